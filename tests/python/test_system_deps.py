import subprocess
import unittest
from pathlib import Path

from catkin_bloom.errors import CommandError, InstallError
from catkin_bloom.system_deps import install_dependencies, parse_rosdep_check, update_rosdep

CHECK_OUTPUT = (
    "System dependencies have not been satisified:\n"
    "apt\tlibboost-all-dev\n"
    "apt\tpython3-numpy \n"
    "pip\tsome-pip-pkg\n"
)


class FakeRunner:
    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []

    def __call__(self, args, cwd=None, env=None, check=True):
        args = [str(a) for a in args]
        self.calls.append((args, env))
        key = " ".join(args[:2])
        if key in self.fail:
            if check:
                raise CommandError(args, 100, "", f"{key} broke")
            return subprocess.CompletedProcess(args, 100, "", f"{key} broke")
        stdout = CHECK_OUTPUT if key == "rosdep check" else ""
        return subprocess.CompletedProcess(args, 1 if key == "rosdep check" else 0, stdout, "")


class SystemDepsTest(unittest.TestCase):
    def test_parse_rosdep_check(self):
        self.assertEqual(parse_rosdep_check(CHECK_OUTPUT), ["libboost-all-dev", "python3-numpy"])

    def test_install_sequence(self):
        runner = FakeRunner()
        requested = install_dependencies(Path("/ws"), runner)

        self.assertEqual(requested, ["libboost-all-dev", "python3-numpy"])
        commands = [" ".join(args) for args, _ in runner.calls]
        self.assertEqual(
            commands,
            [
                "rosdep check --from-paths /ws --ignore-src",
                "apt update",
                "apt install -y libboost-all-dev python3-numpy",
                "rosdep install --from-paths /ws --ignore-src -y",
            ],
        )
        self.assertEqual(runner.calls[2][1], {"DEBIAN_FRONTEND": "noninteractive"})

    def test_apt_install_failure_is_fatal(self):
        with self.assertRaises(InstallError) as ctx:
            install_dependencies(Path("/ws"), FakeRunner(fail={"apt install"}))
        self.assertIn("apt install broke", str(ctx.exception))

    def test_rosdep_install_failure_is_fatal(self):
        with self.assertRaises(InstallError):
            install_dependencies(Path("/ws"), FakeRunner(fail={"rosdep install"}))

    def test_rosdep_update_failure_only_warns(self):
        with self.assertLogs("catkin_bloom.system_deps", level="WARNING"):
            update_rosdep(FakeRunner(fail={"rosdep update"}))


if __name__ == "__main__":
    unittest.main()

import subprocess
import tempfile
import unittest
from pathlib import Path

import yaml

from catkin_bloom import pipeline
from catkin_bloom.config import RuntimeConfig
from catkin_bloom.errors import InstallError, LayerFailedError


def write_pkg(src: Path, name: str, *deps: str) -> None:
    d = src / name
    d.mkdir(parents=True)
    dep_xml = "".join(f"<depend>{dep}</depend>" for dep in deps)
    (d / "package.xml").write_text(
        f'<?xml version="1.0"?><package format="2"><name>{name}</name>{dep_xml}</package>',
        encoding="utf-8",
    )


class FakeBackend:
    def __init__(self, repo: Path, fail=()):
        self.repo = repo
        self.fail = set(fail)
        self.built = []

    def build(self, package, target):
        if package.name in self.fail:
            raise RuntimeError(f"{package.name} does not compile")
        self.built.append(package.name)
        deb = self.repo / f"{package.debian_name(target.ros_distro)}_0.1.0_amd64.deb"
        deb.write_bytes(b"deb")
        return [deb]


class FakeRepository:
    def __init__(self, repo: Path, fail_index=False):
        self.repo = repo
        self.fail_index = fail_index
        self.installed = []
        self.index_writes = 0

    def install(self, artifacts):
        self.installed.append(sorted(a.name for a in artifacts))

    def regenerate_index(self):
        if self.fail_index:
            raise InstallError("Failed to generate package index: dpkg-scanpackages exited with 2")
        self.index_writes += 1
        path = self.repo / "Packages"
        path.write_text("\n".join(sorted(p.name for p in self.repo.glob("*.deb"))), encoding="utf-8")
        return path


class FakeRunner:
    def __init__(self):
        self.calls = []

    def __call__(self, args, cwd=None, env=None, check=True):
        args = [str(a) for a in args]
        self.calls.append(args)
        return subprocess.CompletedProcess(args, 0, "", "")


class PipelineTest(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.src = root / "ws"
        self.repo = root / "repo"
        self.rosdep_dir = root / "rosdep"
        self.apt_dir = root / "apt"
        for d in (self.rosdep_dir, self.apt_dir):
            d.mkdir()

        write_pkg(self.src, "base_lib", "roscpp")
        write_pkg(self.src, "left", "base_lib")
        write_pkg(self.src, "right", "base_lib", "boost")
        write_pkg(self.src, "top", "left", "right")
        write_pkg(self.src, "loop_a", "loop_b")
        write_pkg(self.src, "loop_b", "loop_a")

    def tearDown(self):
        self._tmp.cleanup()

    def config(self, **kwargs):
        kwargs.setdefault("noinstall_deps", True)
        return RuntimeConfig(repo_path=self.repo, src=self.src, jobs=2, **kwargs)

    def run_pipeline(self, config, backend=None, repository=None):
        self.repo.mkdir(exist_ok=True)
        backend = backend or FakeBackend(self.repo)
        repository = repository or FakeRepository(self.repo)
        runner = FakeRunner()
        outcome = pipeline.run(
            config,
            backend=backend,
            repository=repository,
            runner=runner,
            rosdep_sources_dir=self.rosdep_dir,
            apt_sources_dir=self.apt_dir,
            show_progress=False,
        )
        return outcome, backend, repository, runner

    def test_full_run(self):
        with self.assertLogs("catkin_bloom.layering", level="WARNING"):
            outcome, backend, repository, runner = self.run_pipeline(
                self.config(rosdep_defs=[("libfoo", "libfoo-dev")])
            )

        layers = [{p.name for p in layer} for layer in outcome.plan.layers]
        self.assertEqual(layers, [{"base_lib"}, {"left", "right"}, {"top"}])
        self.assertEqual(set(outcome.plan.cyclic), {"loop_a", "loop_b"})
        self.assertEqual(sorted(backend.built), ["base_lib", "left", "right", "top"])
        self.assertEqual(repository.installed[0], ["ros-melodic-base-lib_0.1.0_amd64.deb"])

        mapping = yaml.safe_load((self.repo / "package.yaml").read_text(encoding="utf-8"))
        self.assertEqual(mapping["base_lib"], {"ubuntu": ["ros-melodic-base-lib"]})
        self.assertEqual(mapping["libfoo"], {"ubuntu": ["libfoo-dev"]})
        self.assertNotIn("loop_a", mapping)

        self.assertTrue((self.apt_dir / "99-catkin-bloom-0-repo.list").exists())
        self.assertEqual(runner.calls, [["rosdep", "update"]])
        # once per installed layer, plus the final one
        self.assertEqual(repository.index_writes, 4)
        self.assertIn("ros-melodic-top_0.1.0_amd64.deb", outcome.index_path.read_text(encoding="utf-8"))

    def test_dependency_installation_runs_unless_disabled(self):
        with self.assertLogs("catkin_bloom.layering", level="WARNING"):
            _, _, _, runner = self.run_pipeline(self.config(noinstall_deps=False))
        self.assertIn(["rosdep", "check", "--from-paths", str(self.src), "--ignore-src"], runner.calls)
        self.assertIn(["rosdep", "install", "--from-paths", str(self.src), "--ignore-src", "-y"], runner.calls)

    def test_ignored_packages(self):
        with self.assertLogs("catkin_bloom.layering", level="WARNING"):
            outcome, _, _, _ = self.run_pipeline(self.config(ignored_pkgs=["base_lib"]))
        self.assertEqual(
            [{p.name for p in layer} for layer in outcome.plan.layers],
            [{"left", "right"}, {"top"}],
        )

    def test_failed_layer_keeps_earlier_layers(self):
        backend = FakeBackend(self.repo, fail={"right"})
        self.repo.mkdir()
        with self.assertLogs("catkin_bloom", level="WARNING"):
            with self.assertRaises(LayerFailedError) as ctx:
                self.run_pipeline(self.config(), backend=backend)

        self.assertEqual(ctx.exception.failed, ["right"])
        self.assertNotIn("top", backend.built)
        self.assertTrue((self.repo / "ros-melodic-base-lib_0.1.0_amd64.deb").exists())
        self.assertIn(
            "ros-melodic-base-lib_0.1.0_amd64.deb",
            (self.repo / "Packages").read_text(encoding="utf-8"),
        )

    def test_index_failure_after_a_layer_stops_the_run(self):
        self.repo.mkdir()
        backend = FakeBackend(self.repo)
        repository = FakeRepository(self.repo, fail_index=True)
        with self.assertLogs("catkin_bloom.layering", level="WARNING"):
            with self.assertRaises(InstallError):
                self.run_pipeline(self.config(), backend=backend, repository=repository)

        self.assertEqual(backend.built, ["base_lib"])
        self.assertEqual(repository.installed, [["ros-melodic-base-lib_0.1.0_amd64.deb"]])


if __name__ == "__main__":
    unittest.main()

# catkin_bloom/__init__.py

"""
catkin-bloom: build a workspace of ROS packages into a local Debian repository.

CLI entrypoint: python -m catkin_bloom.cli --repo-path <dir> [src]

This package:
- Scans the workspace for package.xml manifests
- Orders packages into dependency layers
- Builds each layer in parallel through bloom, installing it before the next
- Publishes a rosdep mapping and an apt index for the produced .deb files
"""

__version__ = "0.1.0"

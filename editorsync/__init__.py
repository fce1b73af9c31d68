"""editorsync — keeps an editor's view of a remote file tree fresh and its saves safe."""

__version__ = "0.1.0"

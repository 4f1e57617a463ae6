import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class answers the handful of questions git-secret asks git (is a path
    tracked, is it ignored, what is the configured email) and maintains the
    repository's `.gitignore`.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git entry.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @classmethod
    def discover(cls, cwd: Path | None = None) -> "GitRepo | None":
        """Locates the repository enclosing `cwd`.

        Args:
            cwd (Path | None): The directory to start from. Defaults to CWD.

        Returns:
            GitRepo | None: The enclosing repository, or None outside a work tree.
        """
        try:
            res = subprocess.run(
                ["git", "rev-parse", "--show-toplevel"],
                cwd=cwd or Path.cwd(),
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            logger.debug(f"Repository discovery failed: {e}")
            return None

        root = res.stdout.strip()
        if not root:
            return None
        try:
            return cls(Path(root))
        except ValueError as e:
            logger.debug(f"Repository discovery failed: {e}")
            return None

    def _run(self, args: list[str]) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.

        Returns:
            str: The stripped stdout of the command.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                check=True,
            )
            return res.stdout.strip()
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"Git error: {e.stderr or e}") from e

    def relative(self, path: Path) -> str:
        """Returns `path` relative to the repository root in forward-slash form."""
        return Path(os.path.relpath(path, self.path)).as_posix()

    def normalize_path(self, path_str: str, cwd: Path | None = None) -> str:
        """Normalizes a user-supplied path to a root-relative, forward-slash path.

        Args:
            path_str (str): The path as typed by the user.
            cwd (Path | None): The directory the path is relative to.

        Returns:
            str: The root-relative path, or the input with forward slashes if
            it lies outside the repository.
        """
        absolute = Path(os.path.abspath((cwd or Path.cwd()) / path_str))
        root = Path(os.path.abspath(self.path))
        if absolute == root or root in absolute.parents:
            return absolute.relative_to(root).as_posix()
        return path_str.replace("\\", "/")

    def is_tracked(self, path: Path) -> bool:
        """Checks whether git tracks `path`.

        Args:
            path (Path): The file to check.

        Returns:
            bool: True if the file is in the index.
        """
        try:
            output = self._run(["ls-files", "--error-unmatch", self.relative(path)])
            return bool(output)
        except RuntimeError:
            return False

    def is_ignored(self, path: Path) -> bool:
        """Checks whether `path` matches a .gitignore rule.

        Args:
            path (Path): The file or directory to check.

        Returns:
            bool: True if git would ignore the path.
        """
        # check-ignore exits non-zero when the path is not ignored.
        try:
            self._run(["check-ignore", "-q", "--", self.relative(path)])
            return True
        except RuntimeError:
            return False

    def config_value(self, key: str) -> str | None:
        """Reads a git configuration value.

        Args:
            key (str): The configuration key (e.g., 'user.email').

        Returns:
            str | None: The value, or None if unset.
        """
        try:
            return self._run(["config", key]) or None
        except RuntimeError as e:
            logger.debug(f"git config {key} failed: {e}")
            return None

    def add_to_gitignore(self, pattern: str) -> bool:
        """Appends `pattern` to the repository's .gitignore if it is not present.

        Args:
            pattern (str): The exact line to add.

        Returns:
            bool: True if the file was changed.
        """
        gitignore = self.path / ".gitignore"

        content = ""
        if gitignore.exists():
            with open(gitignore) as f:
                content = f.read()

        if pattern in content.splitlines():
            return False

        with open(gitignore, "a") as f:
            prefix = "\n" if content and not content.endswith("\n") else ""
            f.write(f"{prefix}{pattern}\n")
        logger.debug(f"Added '{pattern}' to .gitignore")
        return True

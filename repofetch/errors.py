"""Exception classes for repository acquisition."""

from __future__ import annotations


class AcquisitionError(Exception):
    """Base exception for all acquisition errors."""

    pass


class ConfigurationError(AcquisitionError):
    """Raised when an input value is invalid."""

    pass


class ConfigurationConflictError(ConfigurationError):
    """Raised when settings are incompatible with the chosen acquisition method."""

    def __init__(self, option: str, method: str, hint: str = ""):
        self.option = option
        self.method = method
        message = f"Input '{option}' not supported when falling back to {method}."
        if hint:
            message = f"{message} {hint}"
        super().__init__(message)


class CapabilityError(AcquisitionError):
    """Raised when the git client is missing or too old."""

    pass


class NetworkError(AcquisitionError):
    """Raised when a fetch, download or API call fails."""

    pass


class VerificationError(AcquisitionError):
    """Raised when the checked-out commit does not match what was requested."""

    def __init__(self, ref: str, expected: str, actual: str):
        self.ref = ref
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checked out an unexpected merge commit for '{ref}': "
            f"expected head {expected}, found {actual}. "
            "The pull request merge commit is stale; retry once the merge ref has been updated."
        )


class GitCommandError(AcquisitionError):
    """Raised when a git command exits with a non-zero status."""

    def __init__(self, args: list[str], exit_code: int, stderr: str = ""):
        self.args_list = list(args)
        self.exit_code = exit_code
        self.stderr = stderr
        command = " ".join(["git", *args])
        message = f"The process '{command}' failed with exit code {exit_code}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class AuthConfigError(AcquisitionError):
    """Raised when credentials cannot be written to a git config file."""

    pass


class RefNotFoundError(AcquisitionError):
    """Raised when a ref cannot be resolved to a branch or tag."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"A branch or tag with the name '{ref}' could not be found")

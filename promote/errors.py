#!/usr/bin/env python
import subprocess
from functools import wraps


class PromotionError(Exception):
    """Base class for every failure that ends a promotion run.

    Each subclass carries the exit status the CLI terminates with, so that
    a calling job can tell a refused run from a failed one.
    """

    exit_code = 1


class PermissionDenied(PromotionError):
    exit_code = 2


class UnsupportedTier(PromotionError):
    exit_code = 3


class InvalidLocalTier(PromotionError):
    exit_code = 3


class SourceUnreachable(PromotionError):
    exit_code = 4


class LocalAliasUnavailable(PromotionError):
    exit_code = 4


class RootPathUnavailable(PromotionError):
    exit_code = 4


class NoDestinationFound(PromotionError):
    exit_code = 5


class LockUnavailable(PromotionError):
    exit_code = 6


class StepFailed(PromotionError):
    """A wrapped tool failed while running a pipeline step.

    Args:
        step: The human readable name of the step, e.g. "Database sync".
        target: The identity of the environment the step was acting on.
        detail: The formatted error raised by the tool.
        hint: An optional note about the state the failure leaves behind.
    """

    def __init__(self, step, target, detail, hint=None):
        self.step = step
        self.target = target
        message = f"Step '{step}' failed on {target}:\n\n{detail}"
        if hint:
            message = f"{message}\n\n{hint}"
        super().__init__(message)


class ToolError(Exception):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, message, returncode=None):
        self.returncode = returncode
        super().__init__(message)


class RegistryError(ToolError):
    """Raised when the site-alias registry cannot answer a query."""


def format_error(heading, input_data, error_data, suggestion=None, cls=ToolError):
    """A utility function to build common error messages.
    Args:
        heading: A string that summarizes the error.
        input_data: A string that provides context about the error, such as
                    the command that was run.
        error_data: A string that provides detail about the error that was
                    raised. The stderr of the command is a useful piece of data.
        suggestion: A optional string that provides a helpful hint on how the
                    user might remedy the error.
        cls: The exception class to construct.

    Returns:
        An exception object constructured with the formatted error message.
        It can be raised directly, for example:

        raise format_error(
                  "The following command returned status 1:",
                  "drush @stage1 updatedb --yes",
                  stderr,
                  "Is the destination reachable over SSH?")
    """
    suggestion = ("\n\n" + suggestion) if suggestion else ""
    return cls(
        heading
        + "\n\n"
        + input_data
        + "\n\n...due to the following error:\n\n"
        + error_data
        + suggestion
    )


def catch_process_error(func):
    """A decorator used to catch CalledProcessError and format the message
    Args:
        func: A function that may raise a subprocess.CalledProcessError.
    Returns:
        A function that will catch any subprocess.CalledProcessError raised,
        and raise a new, formatted ToolError. The return code of the command
        is kept on the error.
    """

    @wraps(func)
    def catch_process_error_wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)

        except subprocess.CalledProcessError as e:
            if isinstance(e.stderr, bytes):
                stderr = e.stderr.decode("utf-8").strip()
            else:
                stderr = (e.stderr or "").strip()
            if isinstance(e.cmd, (list, tuple)):
                cmd = " ".join(str(c) for c in e.cmd)
            else:
                cmd = str(e.cmd).strip()
            error = format_error(
                f"The following command returned status {e.returncode}:",
                cmd,
                stderr or "(no output on stderr)",
            )
            error.returncode = e.returncode
            raise error from None

        except (FileNotFoundError, PermissionError) as e:
            if isinstance(e, PermissionError):
                suggestion = "Is it executable by the operator account?"
            else:
                suggestion = "Is it installed and on the PATH, or set in the settings file?"
            raise format_error(
                "The following command could not be started:",
                str(e.filename),
                str(e.strerror),
                suggestion,
            ) from None

    return catch_process_error_wrapper

from typing import TYPE_CHECKING, List, Tuple

if TYPE_CHECKING:
    from .config_utils import SupervisorConfig

# The supervisor owns the restart policy, so Syncthing must not restart itself.
DEFAULT_ARGUMENTS = ("-no-browser", "-no-restart")


def _valued_options(config: "SupervisorConfig") -> List[Tuple[str, str]]:
    """The `-name=value` options for one start attempt, in command-line order."""
    options = [
        ("-gui-apikey", config.api_key),
        ("-gui-address", config.address),
    ]
    if config.home_dir and str(config.home_dir).strip():
        options.append(("-home", str(config.home_dir)))
    return options


def build_arguments(config: "SupervisorConfig") -> List[str]:
    """
    Builds the Syncthing command-line tokens for one start attempt.

    Values are wrapped in double quotes, ready to be joined into a Windows
    command line. Paths are not validated here; a bad home directory only
    shows up when Syncthing itself fails to start.

    :param config: The supervisor configuration for this attempt.
    :return: The ordered argument tokens, without the executable.
    """
    args = list(DEFAULT_ARGUMENTS)
    args.extend(f'{name}="{value}"' for name, value in _valued_options(config))
    return args


def build_argv(config: "SupervisorConfig") -> List[str]:
    """
    Same tokens as `build_arguments`, with the values left unquoted.

    Used for argv-style launches, where each token reaches the child as-is.
    """
    args = list(DEFAULT_ARGUMENTS)
    args.extend(f"{name}={value}" for name, value in _valued_options(config))
    return args

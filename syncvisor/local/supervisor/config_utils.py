import secrets
import logging
from pathlib import Path
from typing import Any, Mapping, NamedTuple, Optional

log = logging.getLogger(__name__)


class SupervisorConfig(NamedTuple):
    """
    Everything needed for one Syncthing start attempt.

    Instances are immutable. Use `_replace` to change values between runs,
    or from a STARTING subscriber to finalize the next attempt.
    """
    executable_path: Path
    api_key: str
    address: str
    home_dir: Optional[str] = None
    environment: Mapping[str, str] = {}
    deny_upgrade: bool = False
    run_low_priority: bool = False
    hide_device_ids: bool = False


def generate_api_key() -> str:
    """Generates a random API key for a Syncthing session."""
    return secrets.token_urlsafe(24)


def load_supervisor_config(settings: Any) -> SupervisorConfig:
    """
    Builds a SupervisorConfig from the application settings.

    :param settings: The effective settings object (attribute access to the uppercase settings).
    :return: The configuration for the next start attempt.
    """
    api_key = settings.SYNCTHING_API_KEY
    if not api_key:
        api_key = generate_api_key()
        log.debug("No Syncthing API key configured, generated one for this session.")

    return SupervisorConfig(
        executable_path=Path(settings.SYNCTHING_PATH),
        api_key=api_key,
        address=settings.SYNCTHING_ADDRESS,
        home_dir=settings.SYNCTHING_HOME or None,
        environment=dict(settings.SYNCTHING_ENV),
        deny_upgrade=settings.DENY_UPGRADE,
        run_low_priority=settings.RUN_LOW_PRIORITY,
        hide_device_ids=settings.HIDE_DEVICE_IDS,
    )


def check_configuration(config: SupervisorConfig) -> bool:
    """
    Validates that the Syncthing executable exists at its configured path.

    :return: True if the executable was found, otherwise False.
    """
    log.info("Performing configuration and path validation...")
    path_exe = Path(config.executable_path)
    if not path_exe.is_file():
        log.error(f"CONFIG CHECK FAILED: Syncthing not found at '{path_exe}'")
        return False

    log.info(f"Config Check OK: Found Syncthing at '{path_exe}'")
    if config.home_dir and not Path(config.home_dir).is_dir():
        log.warning(f"Custom home directory '{config.home_dir}' does not exist yet; Syncthing will create it.")
    return True

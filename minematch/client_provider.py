import logging
import os
import pathlib
import platform
from temporalio.client import Client
from temporalio.envconfig import ClientConfig

logger = logging.getLogger(__name__)

# Task queue shared by the worker and everything that starts match workflows.
TASK_QUEUE = os.getenv("MINEMATCH_TASK_QUEUE", "minematch-task-queue")


# Connects to Temporal. A TEMPORAL_PROFILE environment variable selects a
# profile from the envconfig TOML file; otherwise TEMPORAL_ADDRESS and
# TEMPORAL_NAMESPACE are used, defaulting to a local dev server.
async def get_temporal_client() -> Client:
    config_file = get_config_file_path()
    profile = os.getenv("TEMPORAL_PROFILE")
    if profile and config_file.is_file():
        logger.info(f"Connecting to Temporal with profile {profile!r} from {config_file}")
        connect_config = ClientConfig.load_client_connect_config(
            profile=profile,
            config_file=str(config_file),
        )
        return await Client.connect(**connect_config)

    address = os.getenv("TEMPORAL_ADDRESS", "localhost:7233")
    namespace = os.getenv("TEMPORAL_NAMESPACE", "default")
    logger.info(f"Connecting to Temporal at {address} (namespace {namespace})")
    return await Client.connect(address, namespace=namespace)


# Default location of temporal.toml for the current operating system.
def get_config_file_path() -> pathlib.Path:
    system = platform.system()
    if system == "Windows":
        app_data = os.getenv("AppData")
        if app_data is None:
            raise RuntimeError("AppData environment variable not set")
        return pathlib.Path(app_data) / "temporalio/temporal.toml"

    if system == "Darwin":
        base = pathlib.Path.home() / "Library/Application Support"
    else:
        xdg_config_home = os.getenv("XDG_CONFIG_HOME")
        base = pathlib.Path(xdg_config_home) if xdg_config_home else pathlib.Path.home() / ".config"
    return base / "temporalio/temporal.toml"

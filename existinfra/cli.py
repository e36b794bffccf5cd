import logging
import sys
from typing import Optional

import typer

from existinfra.commands import api, cluster, node, plan
from existinfra.config import Settings, set_settings
from existinfra.logging import configure_logging

app = typer.Typer(help="existinfra - provision and upgrade Kubernetes nodes on existing infrastructure.")

# Global debug flag
debug_mode = False

# Add all command groups
app.add_typer(plan.app, name="plan")
app.add_typer(node.app, name="node")
app.add_typer(cluster.app, name="cluster")
app.add_typer(api.app, name="api")


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to a configuration file"),
):
    """existinfra - provision and upgrade Kubernetes nodes on existing infrastructure."""
    global debug_mode
    debug_mode = debug
    settings = Settings.load(config)
    set_settings(settings)
    configure_logging(settings, debug)
    if debug:
        logging.getLogger("existinfra").debug("Debug mode enabled")


def run():
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()

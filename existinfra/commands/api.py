import typer
import uvicorn

from existinfra.config import get_settings

app = typer.Typer(help="Serve the HTTP API.")


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Address to bind"),
    port: int = typer.Option(None, "--port", help="Port to bind"),
):
    """Run the API server with uvicorn."""
    settings = get_settings().api
    uvicorn.run("existinfra.api.main:app", host=host or settings.host, port=port or settings.port)

"""CLI module for running the reference application."""

import typer

app = typer.Typer(
    name="faultline",
    help="faultline - HTTP fault boundary reference server",
    no_args_is_help=True,
)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "faultline.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def version() -> None:
    """Show the application version."""
    from importlib.metadata import PackageNotFoundError, version as get_version

    try:
        ver = get_version("faultline")
    except PackageNotFoundError:
        ver = "0.1.0 (development)"
    typer.echo(f"faultline version {ver}")


if __name__ == "__main__":
    app()

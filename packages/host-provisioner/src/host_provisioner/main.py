import typer

from host_provisioner.commands.install import install, install_minimal

app = typer.Typer(
    name="n8n-bootstrap",
    help="Provision this Ubuntu host to run n8n.",
    add_completion=False,
)

app.command(name="install")(install)
app.command(name="install-minimal")(install_minimal)


if __name__ == "__main__":
    app()

from almig.cli import cli

cli()

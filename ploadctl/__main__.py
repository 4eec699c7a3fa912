from ploadctl.cli import run

run()

from lualens.cli import run

run()

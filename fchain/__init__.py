"""
fchain: command-line front end for media filter chains.

Quick start:
    from fchain.cli.main import main
    raise SystemExit(main(["src=in.mp4", "dst=out.mp4"]))
"""
__version__ = "0.1.0"

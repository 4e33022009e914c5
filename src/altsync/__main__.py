"""Entry point for `python -m altsync`."""

from altsync.cli.app import app


def main() -> None:
    app(prog_name="altsync")


if __name__ == "__main__":
    main()

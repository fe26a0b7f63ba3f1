"""Allow `python -m mezon_mcp` to invoke the CLI entry-point."""

from .cli import app


def main() -> None:
    app(prog_name="mezon-mcp")


if __name__ == "__main__":  # pragma: no cover - manual execution path
    main()

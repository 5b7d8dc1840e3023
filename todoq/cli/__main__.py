"""Entry point for `python -m todoq.cli` invocation."""


def main():
    """Run the CLI with proper program name."""
    from todoq.cli.app import app

    app(prog_name="todoq")


if __name__ == "__main__":
    main()

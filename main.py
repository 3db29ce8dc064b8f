from card_explorer.cli import app


def main() -> None:
    app(prog_name="card-explorer")


if __name__ == "__main__":
    main()

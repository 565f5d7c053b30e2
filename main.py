import logging

from sic.gui import run_app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_app()


if __name__ == "__main__":
    main()

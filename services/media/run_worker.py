import logging

from services.media.worker import run_worker_service


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_worker_service(enable_scheduler=True)


if __name__ == "__main__":
    main()

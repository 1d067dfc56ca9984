"""Command line entry point for JARVIS.

    python main.py api          # HTTP routes and the /ws/voice socket
    python main.py streamlit    # operator console
    python main.py              # both, in separate processes
"""

import argparse
import multiprocessing
import subprocess
import sys
from pathlib import Path

from src.core.logger import logger


def run_api(host: str, port: int, reload: bool = False):
    import uvicorn
    from src.core.settings import settings

    audio_dir = Path(settings.api.AUDIO_DIR)
    audio_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Serving JARVIS on {host}:{port}, reply audio in {audio_dir.resolve()}")

    uvicorn.run(
        "src.api.main:app",
        host=host,
        port=port,
        # uvicorn ignores workers when reload is on
        workers=1 if reload else settings.api.API_WORKERS,
        reload=reload,
        log_level="info",
    )


def run_streamlit(port: int):
    logger.info(f"Starting JARVIS console on port {port}")
    subprocess.run(
        [
            sys.executable,
            "-m",
            "streamlit",
            "run",
            str(Path(__file__).parent / "src" / "streamlit_app.py"),
            f"--server.port={port}",
            "--server.address=localhost",
        ],
        check=False,
    )


def run_both(args: argparse.Namespace):
    processes = [
        multiprocessing.Process(target=run_api, args=(args.host, args.port, args.reload), name="jarvis-api"),
        multiprocessing.Process(target=run_streamlit, args=(args.console_port,), name="jarvis-console"),
    ]

    for process in processes:
        process.start()
    try:
        for process in processes:
            process.join()
    except KeyboardInterrupt:
        logger.info("Stopping JARVIS...")
        for process in processes:
            process.terminate()
        for process in processes:
            process.join()
        logger.info("JARVIS stopped")


def build_parser() -> argparse.ArgumentParser:
    from src.core.settings import settings

    parser = argparse.ArgumentParser(description="JARVIS - voice commands answered by an n8n workflow")
    parser.add_argument(
        "mode",
        choices=["api", "streamlit", "both"],
        default="both",
        nargs="?",
        help="What to run (default: both)",
    )
    parser.add_argument("--host", default=settings.api.API_HOST)
    parser.add_argument("--port", type=int, default=settings.api.API_PORT)
    parser.add_argument("--console-port", type=int, default=8501)
    parser.add_argument("--reload", action="store_true", help="Restart the API on code changes")
    return parser


def main():
    args = build_parser().parse_args()
    logger.info(f"Starting JARVIS in '{args.mode}' mode")

    if args.mode == "api":
        run_api(args.host, args.port, args.reload)
    elif args.mode == "streamlit":
        run_streamlit(args.console_port)
    else:
        run_both(args)


if __name__ == "__main__":
    main()

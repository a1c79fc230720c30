import argparse
import json
import sys

from dotenv import load_dotenv
from loguru import logger

from .errors import OrchestratorError
from .pipeline import load_pipeline
from .runner import PipelineRunner
from .state import PipelineStateStore


def make_parser():
    parser = argparse.ArgumentParser(description="Run the provision and configure stages")
    parser.add_argument(
        "-p", "--pipeline",
        type=str,
        default="./pipeline.toml",
        help="Pipeline definition"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the pipeline once")
    run.add_argument("--run-id", type=str, default=None, help="Run id (generated when omitted)")

    sub.add_parser("status", help="Print the state of the latest run")
    return parser


def main(argv=None) -> int:
    args = make_parser().parse_args(argv)

    try:
        config = load_pipeline(args.pipeline)

        if args.command == "status":
            state = PipelineStateStore(config.state_file).load()
            if state is None:
                logger.warning(f"No run recorded in {config.state_file}")
                return 1
            print(json.dumps(state.to_dict(), indent=2))
            return 0

        return PipelineRunner(config, run_id=args.run_id).run()
    except OrchestratorError as e:
        logger.error(f"Pipeline error: {e}")
        return 2


if __name__ == "__main__":
    load_dotenv()

    from utils.logger import configure_logger
    configure_logger()

    sys.exit(main())

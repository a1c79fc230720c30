import argparse
import os
import sys

from dotenv import load_dotenv
from loguru import logger

from .artifact import DEFAULT_HANDOFF_DIR, HandoffStore, check_fresh
from .errors import HandoffError


def make_parser():
    parser = argparse.ArgumentParser(description="Inspect the host hand-off registry")
    parser.add_argument("-d", "--handoff-dir", type=str, default=os.getenv("HANDOFF_DIR", DEFAULT_HANDOFF_DIR),
                        help="Hand-off registry directory")
    parser.add_argument("-i", "--deployment-id", type=str, default=os.getenv("DEPLOYMENT_ID"),
                        help="Deployment id of the host")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("show", help="Print the host record line")

    check = sub.add_parser("check", help="Fail if the hand-off is missing or stale")
    check.add_argument("--run-id", type=str, default=os.getenv("PIPELINE_RUN_ID"), help="Run that must have produced it")
    check.add_argument("--instance-id", type=str, default=None, help="Instance it must point to")

    sub.add_parser("invalidate", help="Drop the stored hand-off")
    return parser


def main(argv=None) -> int:
    args = make_parser().parse_args(argv)
    if not args.deployment_id:
        logger.error("Deployment id is required (--deployment-id or DEPLOYMENT_ID)")
        return 2

    store = HandoffStore(args.handoff_dir)
    try:
        if args.command == "invalidate":
            store.invalidate(args.deployment_id)
            return 0

        artifact = store.load(args.deployment_id)
        if args.command == "check":
            check_fresh(artifact, run_id=args.run_id, instance_id=args.instance_id)
            logger.success(f"Hand-off for {args.deployment_id} is current (generation {artifact.generation})")
        print(artifact.host_record.to_line())
    except HandoffError as e:
        logger.error(f"Hand-off failure: {e}")
        return 1
    return 0


if __name__ == "__main__":
    load_dotenv()

    from utils.logger import configure_logger
    configure_logger()

    sys.exit(main())

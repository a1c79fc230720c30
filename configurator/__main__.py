import argparse
import os
import sys

from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError

from host_handoff.artifact import DEFAULT_HANDOFF_DIR, HandoffStore, check_fresh
from host_handoff.errors import HandoffError

from .errors import ConfiguratorError
from .runner import run_tasks_sync
from .steps import build_command
from .task_list import load_task_list


def make_parser():
    parser = argparse.ArgumentParser(description="Configure the provisioned host from a task list")
    parser.add_argument(
        "-t", "--tasks",
        type=str,
        default="./tasks.toml",
        help="Task list document"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Validate the task list and print the remote commands")
    check.add_argument("-v", "--verbose", action="store_true", help="Print each rendered command")

    run = sub.add_parser("run", help="Apply the task list to the host named by the hand-off")
    run.add_argument("-d", "--handoff-dir", type=str, default=os.getenv("HANDOFF_DIR", DEFAULT_HANDOFF_DIR),
                     help="Hand-off registry directory")
    run.add_argument("-i", "--deployment-id", type=str, default=os.getenv("DEPLOYMENT_ID"),
                     help="Deployment id of the host")
    run.add_argument("--run-id", type=str, default=os.getenv("PIPELINE_RUN_ID"),
                     help="Reject a hand-off produced by another pipeline run")
    run.add_argument("--record-timeout", type=int, default=300,
                     help="Seconds to wait for the host to write its own record")
    return parser


def main(argv=None) -> int:
    args = make_parser().parse_args(argv)

    try:
        task_list = load_task_list(args.tasks)

        if args.command == "check":
            for task in task_list.tasks:
                print(f"{task.type:<18} {task.name}")
                if args.verbose:
                    print(f"    {build_command(task, become=task_list.become).script}")
            logger.success(f"{len(task_list.tasks)} task(s) in valid order")
            return 0

        if not args.deployment_id:
            logger.error("Deployment id is required (--deployment-id or DEPLOYMENT_ID)")
            return 2

        with logger.contextualize(deployment=args.deployment_id):
            artifact = HandoffStore(args.handoff_dir).load(args.deployment_id)
            check_fresh(artifact, run_id=args.run_id, deployment_id=args.deployment_id)
            run_tasks_sync(artifact, task_list, record_timeout=args.record_timeout)
    except HandoffError as e:
        logger.error(f"Hand-off failure: {e}")
        return 1
    except ValidationError as e:
        logger.error(f"Invalid task list {args.tasks}: {e}")
        return 2
    except ConfiguratorError as e:
        logger.error(f"Configuration failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    load_dotenv()

    from utils.logger import configure_logger
    configure_logger()

    sys.exit(main())

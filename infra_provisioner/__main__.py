import argparse
import os
import sys

from dotenv import load_dotenv
from loguru import logger

from host_handoff.artifact import DEFAULT_HANDOFF_DIR, HandoffArtifact, HandoffStore

from .aws_provider.client_factory import AwsClient
from .build_plan import ApplyResult, apply, destroy, plan, resource_graph
from .desired_state import DesiredState, load_desired_state
from .errors import ProvisionError
from .types import ResourceKind


def publish_handoff(result: ApplyResult, state: DesiredState, handoff_dir: str, run_id: str | None) -> HandoffArtifact:
    artifact = HandoffArtifact(
        deployment_id=state.deployment_id,
        instance_id=result.instance_id,
        public_ip=result.public_ip,
        ssh_user=state.instance.ssh_user,
        ssh_port=state.instance.ssh_port,
        ssh_key_path=state.instance.ssh_key_path,
        login_account_key=state.instance.login_account_key,
        record_path=state.instance.host_record_path,
        open_ports=state.access_policy.open_ports(),
        region=state.region,
        run_id=run_id,
    )
    return HandoffStore(handoff_dir).publish(artifact)


def _confirm(message: str, assume_yes: bool):
    logger.warning(message)
    if assume_yes:
        logger.info("Proceeding due to --yes flag")
        return
    resp = input("Proceed anyway? [y/N]: ").strip().lower()
    if resp not in ("y", "yes"):
        logger.info("Aborting due to user cancellation")
        sys.exit(1)


def make_parser():
    parser = argparse.ArgumentParser(description="Provision the Nexus network and host")
    parser.add_argument(
        "-c", "--config",
        type=str,
        default="./desired_state.toml",
        help="Desired-state document"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("plan", help="Show the changes apply would make")

    apply_parser = sub.add_parser("apply", help="Converge live resources to the desired state")
    apply_parser.add_argument(
        "--handoff-dir",
        type=str,
        default=os.getenv("HANDOFF_DIR", DEFAULT_HANDOFF_DIR),
        help="Publish the host hand-off into this registry directory"
    )
    apply_parser.add_argument(
        "--run-id",
        type=str,
        default=os.getenv("PIPELINE_RUN_ID"),
        help="Pipeline run recorded in the hand-off"
    )
    apply_parser.add_argument(
        "--wait-ssh",
        action="store_true",
        help="Wait until the management port accepts connections"
    )

    destroy_parser = sub.add_parser("destroy", help="Tear down every resource of the deployment")
    destroy_parser.add_argument("-y", "--yes", action="store_true", help="Assume yes to confirmation prompt")
    destroy_parser.add_argument(
        "--handoff-dir",
        type=str,
        default=os.getenv("HANDOFF_DIR", DEFAULT_HANDOFF_DIR),
        help="Invalidate the host hand-off in this registry directory"
    )

    sub.add_parser("output", help="Print the public address of the host")
    return parser


def main(argv=None) -> int:
    args = make_parser().parse_args(argv)

    state = load_desired_state(args.config)
    client = AwsClient.new(state.region)

    with logger.contextualize(deployment=state.deployment_id):
        try:
            if args.command == "plan":
                result = plan(client, state)
                for change in result.changes:
                    print(change)
                logger.info(f"Plan: {len(result.mutations)} change(s)")

            elif args.command == "apply":
                result = apply(client, state, wait_ssh=args.wait_ssh)
                if args.handoff_dir:
                    publish_handoff(result, state, args.handoff_dir, args.run_id)
                if result.ssh_ready is False:
                    logger.error(f"Management port of {result.public_ip} is not reachable")
                    return 1
                print(result.public_ip)

            elif args.command == "destroy":
                _confirm(f"Destroying every resource of deployment {state.deployment_id} in {state.region}", args.yes)
                if args.handoff_dir:
                    HandoffStore(args.handoff_dir).invalidate(state.deployment_id)
                destroy(client, state)

            elif args.command == "output":
                graph = resource_graph(state)
                instance = graph[ResourceKind.INSTANCE].lookup(client, {})
                if instance is None or not instance.public_ip:
                    logger.error(f"No running host for deployment {state.deployment_id}")
                    return 1
                print(instance.public_ip)
        except ProvisionError as e:
            logger.error(f"Provisioning failed: {e}")
            return 1
    return 0


if __name__ == "__main__":
    load_dotenv()

    from utils.logger import configure_logger
    configure_logger()

    sys.exit(main())

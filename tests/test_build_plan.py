import subprocess

import pytest

from conftest import FakeEc2Client, client_error
import configurator.__main__ as configurator_cli
import host_handoff.__main__ as handoff_cli
import infra_provisioner.__main__ as provisioner_cli
from infra_provisioner.__main__ import publish_handoff
from infra_provisioner.aws_provider.vpc import find_vpc
from infra_provisioner.boot_script import render_boot_script
from infra_provisioner.build_plan import apply, destroy, ordered, plan, resource_graph
from infra_provisioner.desired_state import DesiredState
from infra_provisioner.errors import PlanError, ResourceCreationError, ResourceDeletionError
from infra_provisioner.resources import HANDLER_TYPES, SubnetHandler, VpcHandler
from infra_provisioner.types import Action, IngressRule, KeyPairInfo, ResourceKind
from host_handoff.artifact import DEFAULT_HANDOFF_DIR, HandoffStore


def test_apply_builds_scenario_network_and_single_host(ec2: FakeEc2Client, desired_state: DesiredState):
    result = apply(ec2, desired_state)

    assert [v["cidr"] for v in ec2.vpcs.values()] == ["10.0.0.0/16"]
    assert [s["cidr"] for s in ec2.subnets.values()] == ["10.0.1.0/24"]
    assert len(ec2.gateways) == 1
    assert len(ec2.live_instances()) == 1

    (group,) = ec2.security_groups.values()
    assert {rule.port for rule in group["ingress"]} == {22, 8081}

    (table,) = ec2.route_tables.values()
    assert table["routes"]["0.0.0.0/0"] in ec2.gateways
    assert list(table["associations"]) == list(ec2.subnets)

    assert result.instance_id in ec2.instances
    assert result.public_ip == ec2.instances[result.instance_id]["public_ip"]
    assert result.host_replaced is True


def test_apply_creates_referenced_resources_first(ec2: FakeEc2Client, desired_state: DesiredState):
    apply(ec2, desired_state)
    pos = {name: ec2.calls.index(name) for name in ec2.calls}

    assert pos["create_vpc"] < pos["create_subnet"]
    assert pos["create_vpc"] < pos["create_internet_gateway"] < pos["create_route_table"]
    assert pos["create_subnet"] < pos["associate_route_table"]
    assert pos["create_route_table"] < pos["associate_route_table"] < pos["create_instance"]
    assert pos["create_security_group"] < pos["create_instance"]
    assert pos["import_keypair"] < pos["create_instance"]


def test_reapply_without_changes_is_noop(ec2: FakeEc2Client, desired_state: DesiredState):
    first = apply(ec2, desired_state)
    calls_after_first = len(ec2.mutations)

    assert plan(ec2, desired_state).is_empty()

    second = apply(ec2, desired_state)
    assert second.mutations == 0
    assert len(ec2.mutations) == calls_after_first
    assert second.instance_id == first.instance_id
    assert second.host_replaced is False


def test_plan_on_empty_region_creates_everything(ec2: FakeEc2Client, desired_state: DesiredState):
    result = plan(ec2, desired_state)

    assert {c.action for c in result.changes} == {Action.CREATE}
    assert len(result.changes) == len(HANDLER_TYPES)
    assert ec2.mutations == []


def test_order_does_not_depend_on_declaration_order(desired_state: DesiredState):
    graph = resource_graph(desired_state, tuple(reversed(HANDLER_TYPES)))
    order = [handler.kind for handler in ordered(graph)]

    for index, kind in enumerate(order):
        for dep in graph[kind].depends_on:
            assert order.index(dep) < index
    assert order[-1] == ResourceKind.INSTANCE


def test_reference_cycle_is_rejected(desired_state: DesiredState):
    class _VpcInsideSubnet(VpcHandler):
        depends_on = (ResourceKind.SUBNET,)

    graph = resource_graph(desired_state, (_VpcInsideSubnet, SubnetHandler))
    with pytest.raises(PlanError, match="cycle"):
        ordered(graph)


def test_reference_to_undeclared_resource_is_rejected(desired_state: DesiredState):
    graph = resource_graph(desired_state, (SubnetHandler,))
    with pytest.raises(PlanError, match="undeclared"):
        ordered(graph)


def test_creation_failure_halts_and_leaves_created_resources(ec2: FakeEc2Client, desired_state: DesiredState):
    ec2.fail_on["create_instance"] = client_error("InsufficientInstanceCapacity", "RunInstances")

    with pytest.raises(ResourceCreationError) as exc_info:
        apply(ec2, desired_state)

    assert exc_info.value.resource == "instance"
    assert "InsufficientInstanceCapacity" in str(exc_info.value)
    # no rollback
    assert len(ec2.vpcs) == 1
    assert len(ec2.security_groups) == 1
    assert ec2.live_instances() == []

    result = apply(ec2, desired_state)
    assert [c.kind for c in result.changes if c.action != Action.NOOP] == [ResourceKind.INSTANCE]


def test_security_group_drift_is_converged(ec2: FakeEc2Client, desired_state: DesiredState):
    apply(ec2, desired_state)
    (group,) = ec2.security_groups.values()
    group["ingress"].add(IngressRule(port=3306))
    group["ingress"].discard(IngressRule(port=8081))

    change = plan(ec2, desired_state).get(ResourceKind.SECURITY_GROUP)
    assert change.action == Action.UPDATE
    assert "8081" in change.reason and "3306" in change.reason

    apply(ec2, desired_state)
    assert {rule.port for rule in group["ingress"]} == {22, 8081}


def test_instance_type_change_replaces_host(ec2: FakeEc2Client, desired_state: DesiredState):
    first = apply(ec2, desired_state)
    desired_state.instance.instance_type = "t3.large"

    second = apply(ec2, desired_state)

    assert second.host_replaced is True
    assert second.instance_id != first.instance_id
    assert ec2.instances[first.instance_id]["state"] == "terminated"
    assert len(ec2.live_instances()) == 1


def test_stopped_host_is_started(ec2: FakeEc2Client, desired_state: DesiredState):
    first = apply(ec2, desired_state)
    ec2.instances[first.instance_id]["state"] = "stopped"

    second = apply(ec2, desired_state)

    assert second.instance_id == first.instance_id
    assert ec2.calls[-1] == "start_instance"
    assert second.host_replaced is False


def test_vpc_cidr_drift_requires_destroy(ec2: FakeEc2Client, desired_state: DesiredState):
    apply(ec2, desired_state)
    desired_state.network.vpc_cidr = "10.1.0.0/16"
    desired_state.network.subnet_cidr = "10.1.1.0/24"

    with pytest.raises(PlanError, match="destroy"):
        plan(ec2, desired_state)


def test_boot_script_writes_host_record(ec2: FakeEc2Client, desired_state: DesiredState):
    result = apply(ec2, desired_state)
    user_data = ec2.instances[result.instance_id]["user_data"]

    assert "/var/lib/host-handoff/hosts" in user_data
    assert "ansible_user=ubuntu" in user_data
    assert "X-aws-ec2-metadata-token" in user_data


def test_destroy_removes_everything_in_reverse_order(ec2: FakeEc2Client, desired_state: DesiredState):
    apply(ec2, desired_state)
    deleted = destroy(ec2, desired_state)

    kinds = [c.kind for c in deleted]
    assert kinds.index(ResourceKind.INSTANCE) < kinds.index(ResourceKind.SECURITY_GROUP)
    assert kinds.index(ResourceKind.ROUTE_TABLE_ASSOCIATION) < kinds.index(ResourceKind.ROUTE_TABLE)
    assert kinds.index(ResourceKind.SUBNET) < kinds.index(ResourceKind.VPC)
    assert not ec2.vpcs and not ec2.subnets and not ec2.gateways
    assert not ec2.route_tables and not ec2.security_groups
    assert ec2.live_instances() == []
    assert not ec2.keypairs

    # nothing left to delete
    assert destroy(ec2, desired_state) == []


def test_destroy_keeps_key_pair_not_imported_by_deployer(ec2: FakeEc2Client, desired_state: DesiredState):
    desired_state.instance.ssh_key_path = None
    ec2.keypairs["nexus-key"] = KeyPairInfo("nexus-key", "aa:bb", {})

    apply(ec2, desired_state)
    destroy(ec2, desired_state)

    assert "nexus-key" in ec2.keypairs


def test_destroy_failure_is_reported(ec2: FakeEc2Client, desired_state: DesiredState):
    apply(ec2, desired_state)
    ec2.fail_on["delete_security_group"] = client_error("DependencyViolation", "DeleteSecurityGroup")

    with pytest.raises(ResourceDeletionError) as exc_info:
        destroy(ec2, desired_state)
    assert exc_info.value.resource == "security_group"


def test_destroy_and_reprovision_surfaces_new_address(ec2: FakeEc2Client, desired_state: DesiredState, tmp_path):
    handoff_dir = str(tmp_path / "handoff")
    first = apply(ec2, desired_state)
    first_artifact = publish_handoff(first, desired_state, handoff_dir, run_id="run-1")

    destroy(ec2, desired_state)
    HandoffStore(handoff_dir).invalidate(desired_state.deployment_id)

    second = apply(ec2, desired_state)
    second_artifact = publish_handoff(second, desired_state, handoff_dir, run_id="run-2")

    assert second.public_ip != first.public_ip
    assert second_artifact.public_ip == second.public_ip
    assert second_artifact.instance_id != first_artifact.instance_id
    assert HandoffStore(handoff_dir).load(desired_state.deployment_id).public_ip == second.public_ip


def test_cli_handoff_directory_defaults_agree(monkeypatch):
    monkeypatch.delenv("HANDOFF_DIR", raising=False)

    apply_args = provisioner_cli.make_parser().parse_args(["apply"])
    destroy_args = provisioner_cli.make_parser().parse_args(["destroy", "-y"])
    run_args = configurator_cli.make_parser().parse_args(["run"])
    show_args = handoff_cli.make_parser().parse_args(["show"])

    assert apply_args.handoff_dir == destroy_args.handoff_dir == DEFAULT_HANDOFF_DIR
    assert run_args.handoff_dir == show_args.handoff_dir == DEFAULT_HANDOFF_DIR


def test_cli_destroy_invalidates_default_handoff(ec2: FakeEc2Client, desired_state: DesiredState, tmp_path,
                                                 monkeypatch):
    monkeypatch.delenv("HANDOFF_DIR", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(provisioner_cli, "load_desired_state", lambda path: desired_state)
    monkeypatch.setattr(provisioner_cli.AwsClient, "new", lambda region_id: ec2)

    assert provisioner_cli.main(["apply"]) == 0
    store = HandoffStore(DEFAULT_HANDOFF_DIR)
    assert store.exists(desired_state.deployment_id)

    assert provisioner_cli.main(["destroy", "-y"]) == 0
    assert not store.exists(desired_state.deployment_id)
    assert ec2.live_instances() == []


class _DuplicateVpcs:
    def describe_vpcs(self, Filters):
        return {'Vpcs': [
            {'VpcId': vpc_id, 'CidrBlock': '10.0.0.0/16', 'State': 'available',
             'Tags': [{'Key': 'Name', 'Value': 'nexus-test-vpc'}]}
            for vpc_id in ('vpc-1', 'vpc-2')
        ]}


def test_duplicate_live_vpcs_are_a_plan_error():
    with pytest.raises(PlanError, match="vpc-1"):
        find_vpc(_DuplicateVpcs(), "nexus-test-vpc")


def test_boot_script_record_line_is_not_shell_mangled(tmp_path):
    script = render_boot_script(ssh_user="deploy$x", login_account_key="ansible_user",
                                record_path=str(tmp_path / "hosts"))
    (line,) = [line for line in script.splitlines() if line.startswith('echo "$PUBLIC_IP"')]

    subprocess.run(["bash", "-c", f"PUBLIC_IP=54.0.0.10\nRECORD_PATH={tmp_path / 'hosts'}\n{line}"], check=True)

    assert (tmp_path / "hosts.tmp").read_text() == "54.0.0.10 ansible_user=deploy$x\n"

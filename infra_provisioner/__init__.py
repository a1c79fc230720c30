"""
Infra Provisioner

Converges the AWS network (VPC, subnet, internet gateway, route table,
security group) and the single Nexus EC2 host to a desired-state document.

Usage:
    python -m infra_provisioner plan -c desired_state.toml
    python -m infra_provisioner apply -c desired_state.toml --handoff-dir ./handoff
    python -m infra_provisioner destroy -c desired_state.toml
"""

__version__ = "0.1.0"

# pyright: reportTypedDictNotRequiredAccess=false

from typing import Dict, Optional

from botocore.exceptions import ClientError
from mypy_boto3_ec2.client import EC2Client
from mypy_boto3_ec2.type_defs import KeyPairInfoTypeDef

from utils.wait_until import wait_until

from ..errors import PlanError
from ..types import KeyPairInfo
from .tags import as_tag_dict, tag_specifications


def as_key_pair_info(rep: KeyPairInfoTypeDef):
    assert type(rep['KeyName']) is str
    assert type(rep['KeyFingerprint']) is str
    return KeyPairInfo(key_pair_name=rep['KeyName'], finger_print=rep['KeyFingerprint'], tags=as_tag_dict(rep))


def get_keypair(client: EC2Client, key_pair_name: str) -> Optional[KeyPairInfo]:
    try:
        response = client.describe_key_pairs(KeyNames=[key_pair_name])
    except ClientError as e:
        if e.response['Error']['Code'] == 'InvalidKeyPair.NotFound':
            return None
        raise

    result = [as_key_pair_info(kp) for kp in response['KeyPairs']]

    if len(result) == 0:
        return None
    elif len(result) == 1:
        return result[0]
    else:
        raise PlanError(f"Unexpected: multiple result for key pair {key_pair_name}")


def import_keypair(client: EC2Client, key_pair_name: str, public_key: str, tags: Dict[str, str]):
    client.import_key_pair(
        KeyName=key_pair_name,
        PublicKeyMaterial=public_key.encode('utf-8'),
        TagSpecifications=tag_specifications('key-pair', tags),  # pyright: ignore[reportArgumentType]
    )

    wait_until(lambda: get_keypair(client, key_pair_name) is not None, timeout=30, retry_interval=3)


def delete_keypair(client: EC2Client, key_pair_name: str):
    client.delete_key_pair(KeyName=key_pair_name)

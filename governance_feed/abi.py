"""
abi.py — Minimal event ABI for the governance contracts we watch, and which
events to pull from which address on each network.
"""
import json

GOVERNANCE_EVENTS_ABI = json.loads("""[
 {"anonymous":false,"type":"event","name":"ProposalCreated","inputs":[
  {"indexed":false,"name":"proposalId","type":"uint256"},
  {"indexed":false,"name":"proposer","type":"address"},
  {"indexed":false,"name":"targets","type":"address[]"},
  {"indexed":false,"name":"values","type":"uint256[]"},
  {"indexed":false,"name":"signatures","type":"string[]"},
  {"indexed":false,"name":"calldatas","type":"bytes[]"},
  {"indexed":false,"name":"voteStart","type":"uint256"},
  {"indexed":false,"name":"voteEnd","type":"uint256"},
  {"indexed":false,"name":"description","type":"string"}]},
 {"anonymous":false,"type":"event","name":"ProposalQueued","inputs":[
  {"indexed":false,"name":"proposalId","type":"uint256"},
  {"indexed":false,"name":"etaSeconds","type":"uint256"}]},
 {"anonymous":false,"type":"event","name":"ProposalExecuted","inputs":[
  {"indexed":false,"name":"proposalId","type":"uint256"}]},
 {"anonymous":false,"type":"event","name":"ProposalCanceled","inputs":[
  {"indexed":false,"name":"proposalId","type":"uint256"}]},
 {"anonymous":false,"type":"event","name":"ProposalExtended","inputs":[
  {"indexed":true,"name":"proposalId","type":"uint256"},
  {"indexed":false,"name":"extendedDeadline","type":"uint64"}]},
 {"anonymous":false,"type":"event","name":"CallScheduled","inputs":[
  {"indexed":true,"name":"id","type":"bytes32"},
  {"indexed":true,"name":"index","type":"uint256"},
  {"indexed":false,"name":"target","type":"address"},
  {"indexed":false,"name":"value","type":"uint256"},
  {"indexed":false,"name":"data","type":"bytes"},
  {"indexed":false,"name":"predecessor","type":"bytes32"},
  {"indexed":false,"name":"delay","type":"uint256"}]},
 {"anonymous":false,"type":"event","name":"CallExecuted","inputs":[
  {"indexed":true,"name":"id","type":"bytes32"},
  {"indexed":true,"name":"index","type":"uint256"},
  {"indexed":false,"name":"target","type":"address"},
  {"indexed":false,"name":"value","type":"uint256"},
  {"indexed":false,"name":"data","type":"bytes"}]},
 {"anonymous":false,"type":"event","name":"Cancelled","inputs":[
  {"indexed":true,"name":"id","type":"bytes32"}]},
 {"anonymous":false,"type":"event","name":"MinDelayChange","inputs":[
  {"indexed":false,"name":"oldDuration","type":"uint256"},
  {"indexed":false,"name":"newDuration","type":"uint256"}]},
 {"anonymous":false,"type":"event","name":"UpgradeStarted","inputs":[
  {"indexed":true,"name":"_id","type":"bytes32"},
  {"indexed":false,"name":"_proposal","type":"tuple","components":[
   {"name":"calls","type":"tuple[]","components":[
    {"name":"target","type":"address"},
    {"name":"value","type":"uint256"},
    {"name":"data","type":"bytes"}]},
   {"name":"executor","type":"address"},
   {"name":"salt","type":"bytes32"}]}]},
 {"anonymous":false,"type":"event","name":"UpgradeApprovedByGuardians","inputs":[
  {"indexed":true,"name":"_id","type":"bytes32"}]},
 {"anonymous":false,"type":"event","name":"UpgradeApprovedBySecurityCouncil","inputs":[
  {"indexed":true,"name":"_id","type":"bytes32"}]},
 {"anonymous":false,"type":"event","name":"UpgradeExecuted","inputs":[
  {"indexed":true,"name":"_id","type":"bytes32"}]},
 {"anonymous":false,"type":"event","name":"EmergencyUpgradeExecuted","inputs":[
  {"indexed":true,"name":"_id","type":"bytes32"}]},
 {"anonymous":false,"type":"event","name":"SoftFreeze","inputs":[
  {"indexed":false,"name":"_protocolFrozenUntil","type":"uint256"}]},
 {"anonymous":false,"type":"event","name":"HardFreeze","inputs":[
  {"indexed":false,"name":"_protocolFrozenUntil","type":"uint256"}]},
 {"anonymous":false,"type":"event","name":"Unfreeze","inputs":[]}
]""")

GOVERNOR_EVENTS = [
    "ProposalCreated", "ProposalQueued", "ProposalExecuted",
    "ProposalCanceled", "ProposalExtended",
]
TIMELOCK_EVENTS = ["CallScheduled", "CallExecuted", "Cancelled", "MinDelayChange"]
UPGRADE_HANDLER_EVENTS = [
    "UpgradeStarted", "UpgradeApprovedByGuardians", "UpgradeApprovedBySecurityCouncil",
    "UpgradeExecuted", "EmergencyUpgradeExecuted", "SoftFreeze", "HardFreeze", "Unfreeze",
]

EVENTS_MAPPING = {
    "Ethereum Mainnet": {
        "0x8f7a9912416e8AdC4D9c21FAe1415D3318A11897": UPGRADE_HANDLER_EVENTS,  # Protocol Upgrade Handler
        "0xE30Dca3047B37dc7d88849dE4A4Dc07937ad5Ab3": UPGRADE_HANDLER_EVENTS,  # Protocol Upgrade Handler v2.0
    },
    "ZKsync Network": {
        "0x76705327e682F2d96943280D99464Ab61219e34f": GOVERNOR_EVENTS,   # ZkProtocolGovernor
        "0x3701fB675bCd4A85eb11A2467628BBe193F6e6A8": TIMELOCK_EVENTS,   # ZkProtocolGovernor Timelock
        "0x10560f8B7eE37571AD7E3702EEb12Bc422036E89": GOVERNOR_EVENTS,   # ZkTokenGovernor
        "0x3E21c654B545Bf6236DC08236169DcF13dA4dDd6": TIMELOCK_EVENTS,   # ZkTokenGovernor Timelock
        "0x496869a7575A1f907D1C5B1eca28e4e9E382afAb": GOVERNOR_EVENTS,   # ZkGovOpsGovernor
        "0xC3e970cB015B5FC36edDf293D2370ef5D00F7a19": TIMELOCK_EVENTS,   # ZkGovOpsGovernor Timelock
        "0x085b8B6407f150D62adB1EF926F7f304600ec714": TIMELOCK_EVENTS,   # ZkProtocolGovernor Timelock v2.0
        "0xb83FF6501214ddF40C91C9565d095400f3F45746": GOVERNOR_EVENTS,   # ZkTokenGovernor v2.0
        "0xe5d21A9179CA2E1F0F327d598D464CcF60d89c3d": TIMELOCK_EVENTS,   # ZkTokenGovernor Timelock v2.0
        "0xEEEa739a8b6fB1b8f703E23C9Be03CeeA643b160": GOVERNOR_EVENTS,   # ZkGovOpsGovernor v2.0
        "0xC9E442574958f96C026DeF9a50C3236cab17428a": TIMELOCK_EVENTS,   # ZkGovOpsGovernor Timelock v2.0
    },
}


def find_event_abi(name: str, abi: list[dict] | None = None) -> dict | None:
    for entry in GOVERNANCE_EVENTS_ABI if abi is None else abi:
        if entry.get("type") == "event" and entry.get("name") == name:
            return entry
    return None


def canonical_type(inp: dict) -> str:
    """ABI input -> canonical type string, expanding tuples: tuple[] -> (address,uint256,bytes)[]"""
    typ = inp["type"]
    if typ.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in inp.get("components", []))
        return f"({inner}){typ[len('tuple'):]}"
    return typ


def event_signature(event_abi: dict) -> str:
    return f"{event_abi['name']}({','.join(canonical_type(i) for i in event_abi['inputs'])})"

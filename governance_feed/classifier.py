"""Address -> governance body / category lookup tables."""

GOV_BODIES = {
    "0x5A7d6b2F92C77FAD6CCaBd7EE0624E64907Eaf3E": "Token",
    "0x76705327e682F2d96943280D99464Ab61219e34f": "ZkProtocolGovernor",
    "0x3701fB675bCd4A85eb11A2467628BBe193F6e6A8": "ZkProtocolGovernor Timelock",
    "0x10560f8B7eE37571AD7E3702EEb12Bc422036E89": "ZkTokenGovernor",
    "0x3E21c654B545Bf6236DC08236169DcF13dA4dDd6": "ZkTokenGovernor Timelock",
    "0x496869a7575A1f907D1C5B1eca28e4e9E382afAb": "ZkGovOpsGovernor",
    "0xC3e970cB015B5FC36edDf293D2370ef5D00F7a19": "ZkGovOpsGovernor Timelock",
    "0x8f7a9912416e8AdC4D9c21FAe1415D3318A11897": "Protocol Upgrade Handler",
    "0xdEFd1eDEE3E8c5965216bd59C866f7f5307C9b29": "Emergency Upgrade Board",
    "0xD677e09324F8Bb3cC64F009973693f751c33A888": "Guardians",
    "0xBDFfCC71FE84020238F2990a6D2954e87355De0D": "Security Council",
    "0xbC1653bd3829dfEc575AfC3816D4899cd103B51c": "Foundation",
    "0x5d89444f84d544deBbD13D672f314A4DfaE3f77C": "zkMessage",
    "0x085b8B6407f150D62adB1EF926F7f304600ec714": "ZkProtocolGovernor Timelock v2.0",
    "0xb83FF6501214ddF40C91C9565d095400f3F45746": "ZkTokenGovernor v2.0",
    "0xe5d21A9179CA2E1F0F327d598D464CcF60d89c3d": "ZkTokenGovernor Timelock v2.0",
    "0xEEEa739a8b6fB1b8f703E23C9Be03CeeA643b160": "ZkGovOpsGovernor v2.0",
    "0xC9E442574958f96C026DeF9a50C3236cab17428a": "ZkGovOpsGovernor Timelock v2.0",
    "0xE30Dca3047B37dc7d88849dE4A4Dc07937ad5Ab3": "Protocol Upgrade Handler v2.0",
}

CATEGORIES = {
    "Protocol": [
        "0x76705327e682F2d96943280D99464Ab61219e34f",
        "0x3701fB675bCd4A85eb11A2467628BBe193F6e6A8",
        "0x085b8B6407f150D62adB1EF926F7f304600ec714",
        "0x8f7a9912416e8AdC4D9c21FAe1415D3318A11897",
        "0xE30Dca3047B37dc7d88849dE4A4Dc07937ad5Ab3",
    ],
    "Token": [
        "0x5A7d6b2F92C77FAD6CCaBd7EE0624E64907Eaf3E",
        "0x10560f8B7eE37571AD7E3702EEb12Bc422036E89",
        "0x3E21c654B545Bf6236DC08236169DcF13dA4dDd6",
        "0xb83FF6501214ddF40C91C9565d095400f3F45746",
        "0xe5d21A9179CA2E1F0F327d598D464CcF60d89c3d",
    ],
    "GovOps": [
        "0x496869a7575A1f907D1C5B1eca28e4e9E382afAb",
        "0xC3e970cB015B5FC36edDf293D2370ef5D00F7a19",
        "0xEEEa739a8b6fB1b8f703E23C9Be03CeeA643b160",
        "0xC9E442574958f96C026DeF9a50C3236cab17428a",
    ],
    "Message": ["0x5d89444f84d544deBbD13D672f314A4DfaE3f77C"],
    "Emergency": [
        "0xdEFd1eDEE3E8c5965216bd59C866f7f5307C9b29",
        "0xD677e09324F8Bb3cC64F009973693f751c33A888",
        "0xBDFfCC71FE84020238F2990a6D2954e87355De0D",
        "0xbC1653bd3829dfEc575AfC3816D4899cd103B51c",
    ],
}

_GOV_BODIES_LOWER = {addr.lower(): label for addr, label in GOV_BODIES.items()}
_CATEGORY_LOWER = {addr.lower(): cat for cat, addrs in CATEGORIES.items() for addr in addrs}


def get_gov_body(address: str) -> str:
    return _GOV_BODIES_LOWER.get(address.lower(), "Unknown Governance Body")


def get_category(address: str) -> str:
    return _CATEGORY_LOWER.get(address.lower(), "Other")

"""Minimal ABIs for the contracts the toolkit calls."""


def _fn(name, inputs, outputs=(), mutability="view"):
    return {
        "type": "function",
        "name": name,
        "inputs": list(inputs),
        "outputs": list(outputs),
        "stateMutability": mutability,
    }


def _arg(name, type_, components=None):
    arg = {"name": name, "type": type_}
    if components:
        arg["components"] = components
    return arg


DLP_REGISTRY_ABI = [
    _fn("dlpIds", [_arg("dlpAddress", "address")], [_arg("", "uint256")]),
    _fn("dlpNameToId", [_arg("dlpName", "string")], [_arg("", "uint256")]),
    _fn(
        "registerDlp",
        [
            _arg("registrationInfo", "tuple", [
                _arg("dlpAddress", "address"),
                _arg("ownerAddress", "address"),
                _arg("treasuryAddress", "address"),
                _arg("name", "string"),
                _arg("iconUrl", "string"),
                _arg("website", "string"),
                _arg("metadata", "string"),
            ]),
        ],
        mutability="payable",
    ),
]

QUERY_ENGINE_ABI = [
    _fn("dlpPubKeys", [_arg("dlpId", "uint256")], [_arg("", "string")]),
]

REFINER_REGISTRY_ABI = [
    _fn(
        "addRefiner",
        [
            _arg("dlpId", "uint256"),
            _arg("name", "string"),
            _arg("schemaDefinitionUrl", "string"),
            _arg("refinementInstructionUrl", "string"),
        ],
        [_arg("", "uint256")],
        mutability="nonpayable",
    ),
    {
        "type": "event",
        "name": "RefinerAdded",
        "anonymous": False,
        "inputs": [
            {"name": "refinerId", "type": "uint256", "indexed": True},
            {"name": "dlpId", "type": "uint256", "indexed": True},
            {"name": "name", "type": "string", "indexed": False},
            {"name": "schemaDefinitionUrl", "type": "string", "indexed": False},
            {"name": "refinementInstructionUrl", "type": "string", "indexed": False},
        ],
    },
]

DLP_ABI = [
    _fn("updateProofInstruction", [_arg("newProofInstruction", "string")], mutability="nonpayable"),
    _fn("publicKey", [], [_arg("", "string")]),
    _fn("requestReward", [_arg("fileId", "uint256"), _arg("proofIndex", "uint256")], mutability="nonpayable"),
]

DATA_REGISTRY_ABI = [
    _fn(
        "addFileWithPermissions",
        [
            _arg("url", "string"),
            _arg("ownerAddress", "address"),
            _arg("permissions", "tuple[]", [
                _arg("account", "address"),
                _arg("key", "string"),
            ]),
        ],
        [_arg("", "uint256")],
        mutability="nonpayable",
    ),
    {
        "type": "event",
        "name": "FileAdded",
        "anonymous": False,
        "inputs": [
            {"name": "fileId", "type": "uint256", "indexed": True},
            {"name": "ownerAddress", "type": "address", "indexed": True},
            {"name": "url", "type": "string", "indexed": False},
        ],
    },
]

TEE_POOL_ABI = [
    _fn("requestContributionProof", [_arg("fileId", "uint256")], mutability="payable"),
    _fn("fileJobIds", [_arg("fileId", "uint256")], [_arg("", "uint256[]")]),
    _fn(
        "jobs",
        [_arg("jobId", "uint256")],
        [
            _arg("", "tuple", [
                _arg("fileId", "uint256"),
                _arg("bidAmount", "uint256"),
                _arg("status", "uint8"),
                _arg("addedTimestamp", "uint256"),
                _arg("ownerAddress", "address"),
                _arg("teeAddress", "address"),
            ]),
        ],
    ),
    _fn(
        "tees",
        [_arg("teeAddress", "address")],
        [
            _arg("", "tuple", [
                _arg("teeAddress", "address"),
                _arg("url", "string"),
                _arg("status", "uint8"),
                _arg("amount", "uint256"),
                _arg("withdrawnAmount", "uint256"),
                _arg("jobsCount", "uint256"),
                _arg("publicKey", "string"),
            ]),
        ],
    ),
]

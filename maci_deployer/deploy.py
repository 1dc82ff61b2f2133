#!/usr/bin/env python3
"""
Deploy MACI to the network configured in the environment

Re-running after a failure resumes: contracts already recorded for the
network are reused and only the remaining ones are deployed.
"""

import os
import sys
import json
import logging
from typing import Any, Dict, Optional

from .config import DeployConfig, configure_logging
from .contracts import ArtifactStore, EContracts, EMode
from .errors import DeploymentError
from .executor import Deployment
from .maci import MaciDeployArgs, MaciService
from .notify import send_slack_alert
from .orchestrator import Orchestrator
from .storage import ContractStorage
from .vk import TreeConfig, VerifyingKey, VerifyingKeyBundle

logger = logging.getLogger(__name__)

VK_ENV = {
    EMode.QV: ("VK_PROCESS_QV", "VK_TALLY_QV"),
    EMode.NON_QV: ("VK_PROCESS_NON_QV", "VK_TALLY_NON_QV"),
}


def _load_vk(path: str) -> VerifyingKey:
    with open(path, 'r') as f:
        return VerifyingKey.from_obj(json.load(f))


def load_vk_bundle(config: TreeConfig, env: Optional[Dict[str, str]] = None) -> Optional[VerifyingKeyBundle]:
    """Bundle every mode whose process and tally key paths are both set"""
    env = os.environ if env is None else env
    bundle = VerifyingKeyBundle(config)
    for mode, (process_var, tally_var) in VK_ENV.items():
        process_path, tally_path = env.get(process_var), env.get(tally_var)
        if process_path and tally_path:
            bundle.add(mode, _load_vk(process_path), _load_vk(tally_path))
        elif process_path or tally_path:
            raise ValueError(f"Both {process_var} and {tally_var} must be set for mode {mode.name}")
    return bundle if bundle.modes else None


def load_maci_args(env: Optional[Dict[str, str]] = None) -> MaciDeployArgs:
    env = os.environ if env is None else env
    state_tree_depth = int(env.get("STATE_TREE_DEPTH", "10"))
    tree_config = TreeConfig(
        state_tree_depth=state_tree_depth,
        int_state_tree_depth=int(env.get("INT_STATE_TREE_DEPTH", "1")),
        message_tree_depth=int(env.get("MESSAGE_TREE_DEPTH", "2")),
        message_batch_depth=int(env.get("MESSAGE_BATCH_DEPTH", "1")),
        vote_option_tree_depth=int(env.get("VOTE_OPTION_TREE_DEPTH", "2")),
    )
    bundle = load_vk_bundle(tree_config, env)

    return MaciDeployArgs(
        state_tree_depth=state_tree_depth,
        initial_voice_credits=int(env.get("INITIAL_VOICE_CREDITS", "99")),
        vk_bundles=[bundle] if bundle else [],
        gatekeeper=EContracts(env.get("GATEKEEPER", EContracts.EASGatekeeper.value)),
        eas_address=env.get("EAS_ADDRESS"),
        eas_attester=env.get("EAS_ATTESTER"),
        eas_schema=env.get("EAS_SCHEMA"),
    )


def run(config: DeployConfig, args: MaciDeployArgs) -> Dict[str, Any]:
    deployment = Deployment.from_config(config)
    storage = ContractStorage(config.storage_dir)
    orchestrator = Orchestrator(
        deployment,
        storage,
        ArtifactStore(config.artifacts_dir),
        verify_on_resume=config.verify_on_resume,
    )
    return MaciService(orchestrator).deploy_all(args)


def main():
    config = DeployConfig.from_env()
    configure_logging(config.log_level, config.log_file)

    try:
        args = load_maci_args()
        addresses = run(config, args)
    except DeploymentError as e:
        logger.error(f"Deployment failed: {e}")
        send_slack_alert(config.slack_webhook, f"deployment failed: {e}", {"RPC": config.rpc_url})
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Deployment stopped by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        send_slack_alert(config.slack_webhook, f"deployment aborted: {e}", {"RPC": config.rpc_url})
        sys.exit(1)

    for contract_id, address in addresses.items():
        logger.info(f"{contract_id}: {address}")
    send_slack_alert(config.slack_webhook, "deployment complete", addresses)


if __name__ == "__main__":
    main()

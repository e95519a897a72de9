"""
Configuration du bot multi-wallets hop.fun
"""

import os
import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from models import WalletCredential

logger = logging.getLogger("config")

CONFIG_FILE = "config.json"
PRIVATE_KEY_SLOTS = ("PK1", "PK2", "PK3", "PK4")

# Configuration par défaut
DEFAULT_CONFIG = {
    # Endpoints
    "GRAPHQL_URL": "https://sui-mainnet.mystenlabs.com/graphql",
    "RPC_HTTP_ENDPOINT": "https://fullnode.mainnet.sui.io:443",
    "EXPLORER_TX_URL": "https://suivision.xyz/txblock/",

    # Proxy sortant
    "PROXY_URL": "",
    "PROXY_USERNAME": "",
    "PROXY_PASSWORD": "",
    "HTTP_TIMEOUT_SECONDS": 10,

    # Plateforme
    "PLATFORM_PACKAGE_ID": "0xda79a03bd1cfcd082d713ee615dd7fe5f4574019ddad131466312fa5d1369077",
    "SELL_PACKAGE_ID": "0x0ab2e8efd128ab543e60afc1719108704b960833d47e452b2ffb9bc915ef6dbc",
    "MEME_CONFIG_ID": "0xfa6d14378e545d7da62d15f7f1b5ac26ed9b2d7ffa6b232b245ffe7645591e91",

    # Trading
    "MAX_PRICE_BOUND": 184467440737095,
    "GAS_BUDGET": 50_000_000,
    "MERGE_SETTLE_SECONDS": 1.0,
    "AUTOBUY_AMOUNT": 1.0,

    # Scan & Timing
    "CREATOR_POLL_SECONDS": 1.0,
    "CREATOR_SELL_LOOKBACK": 15,
    "LAUNCH_POLL_SECONDS": 10.0,
    "LAUNCH_LOOKBACK": 5,

    # Stockage
    "DATA_DIR": "data",
    "WATCHED_TOKENS_FILE": "watched_tokens.json",
    "TOKENS_FILE": "tokens.json",
    "SETTINGS_FILE": "settings.json",

    # Notifier
    "ENABLE_TELEGRAM": False,
    "TELEGRAM_BOT_TOKEN": "",
    "TELEGRAM_CHAT_ID": "",

    # System
    "LOG_LEVEL": "INFO",
}


class ConfigError(Exception):
    """Configuration invalide au démarrage (seul cas qui arrête le process)."""


def _coerce(raw: str, default: Any) -> Any:
    # bool avant int: bool est une sous-classe de int
    if isinstance(default, bool):
        return raw.lower() == "true"
    if isinstance(default, (int, float)):
        return type(default)(raw)
    return raw


def _read_config_file(config_file: str) -> Dict[str, Any]:
    if not os.path.exists(config_file):
        with open(config_file, "w") as f:
            json.dump(DEFAULT_CONFIG, f, indent=2)
        logger.info(f"[CONFIG] {config_file} absent, valeurs par défaut écrites")
        return {}

    try:
        with open(config_file, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("objet JSON attendu")
        return data
    except (OSError, ValueError) as e:
        logger.error(f"[CONFIG] {config_file} illisible ({e}), valeurs par défaut appliquées")
        return {}


def load_config(config_file: str = CONFIG_FILE) -> Dict[str, Any]:
    """
    Config du bot. `USE_ENV_CONFIG=true` bascule sur l'environnement, sinon
    `config_file` est lu (et créé s'il manque). Les clés absentes reprennent
    leur valeur de DEFAULT_CONFIG.
    """
    if os.environ.get("USE_ENV_CONFIG", "").lower() == "true":
        logger.info("[CONFIG] Source: variables d'environnement")
        return load_config_from_env()

    config = dict(DEFAULT_CONFIG)
    config.update(_read_config_file(config_file))
    return config


def load_config_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Une variable par clé de DEFAULT_CONFIG, convertie au type du défaut."""
    environ = os.environ if environ is None else environ
    config = dict(DEFAULT_CONFIG)

    for key, default in DEFAULT_CONFIG.items():
        raw = environ.get(key)
        if raw is None:
            continue
        try:
            config[key] = _coerce(raw, default)
        except ValueError:
            logger.warning(f"[CONFIG] {key}={raw!r} invalide, on garde {default!r}")

    return config


def data_path(config: Dict[str, Any], key: str) -> str:
    return os.path.join(config.get("DATA_DIR") or ".", config[key])


def load_private_keys(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Clés privées PK1..PK4, les emplacements vides sont ignorés."""
    environ = os.environ if environ is None else environ
    keys = []
    for slot in PRIVATE_KEY_SLOTS:
        value = (environ.get(slot) or "").strip()
        if value:
            keys.append(value)
    return keys


def load_wallets(
    derive_address: Callable[[str], str],
    environ: Optional[Mapping[str, str]] = None,
) -> List[WalletCredential]:
    """
    Construit les wallets à partir des clés d'environnement.
    `derive_address` transforme une clé privée en adresse on-chain.
    """
    wallets = []
    for private_key in load_private_keys(environ):
        address = derive_address(private_key)
        wallets.append(WalletCredential(index=len(wallets), address=address, private_key=private_key))

    if not wallets:
        raise ConfigError("No wallet private key configured (expected PK1..PK4)")

    logger.info(f"{len(wallets)} wallet(s) chargé(s)")
    return wallets

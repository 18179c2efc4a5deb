from decimal import Decimal
import os
from typing import Optional

from typing_extensions import TypedDict
from dotenv import load_dotenv
from supabase import create_client, Client

BASE_CHAIN_ID = 8453
BASE_SEPOLIA_CHAIN_ID = 84532

# Circle USDC deployments; the platform token and deposit manager are per-deployment and come from env.
DEFAULT_PAYMENT_TOKEN_ADDRESSES = {
    BASE_CHAIN_ID: '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913',
    BASE_SEPOLIA_CHAIN_ID: '0x036CbD53842c5426634e7929541eC2318f3dCF7e',
}

DEFAULT_RPC_URLS = {
    BASE_CHAIN_ID: 'https://mainnet.base.org',
    BASE_SEPOLIA_CHAIN_ID: 'https://sepolia.base.org',
}

def load_env(required: tuple[str, ...] = ('SUPABASE_URL', 'SUPABASE_KEY')) -> dict[str, str]:
    # .env is optional; real environment variables take precedence
    load_dotenv()

    env_vars = {}
    for key in required:
        value = os.getenv(key)
        if value is None or value == '':
            raise ValueError(f"Missing required environment variable: {key}. "
                             f"Set it in the environment or in a .env file.")
        env_vars[key] = value

    return env_vars

def get_supabase_client() -> Client:
    env = load_env()
    return create_client(env['SUPABASE_URL'], env['SUPABASE_KEY'])

class ClientParams(TypedDict):
    secondary_fee_rate: Decimal
    read_cache_ttl_s: float
    supported_chain_ids: list[int]
    large_contest_threshold: int

def get_default_client_params() -> ClientParams:
    return ClientParams(
        secondary_fee_rate=Decimal('0.15'),
        read_cache_ttl_s=15.0,  # claim reads never go through the cache
        supported_chain_ids=[BASE_CHAIN_ID, BASE_SEPOLIA_CHAIN_ID],
        large_contest_threshold=10,
    )

def is_chain_supported(chain_id: Optional[int], params: Optional[ClientParams] = None) -> bool:
    params = params or get_default_client_params()
    return chain_id in params['supported_chain_ids']

class ChainContracts(TypedDict):
    chain_id: int
    rpc_url: str
    payment_token_address: str
    platform_token_address: str
    deposit_manager_address: str

def get_chain_contracts(chain_id: int) -> Optional[ChainContracts]:
    """
    Contract addresses and RPC endpoint for a supported chain, read from the environment
    (CHAIN_<id>_PLATFORM_TOKEN_ADDRESS, CHAIN_<id>_DEPOSIT_MANAGER_ADDRESS, RPC_URL_<id>, ...).
    Returns None for unsupported chains.
    """
    if not is_chain_supported(chain_id):
        return None
    load_dotenv()

    prefix = f"CHAIN_{chain_id}_"
    return ChainContracts(
        chain_id=chain_id,
        rpc_url=os.getenv(f"RPC_URL_{chain_id}", DEFAULT_RPC_URLS[chain_id]),
        payment_token_address=os.getenv(prefix + 'PAYMENT_TOKEN_ADDRESS', DEFAULT_PAYMENT_TOKEN_ADDRESSES[chain_id]),
        platform_token_address=os.getenv(prefix + 'PLATFORM_TOKEN_ADDRESS', ''),
        deposit_manager_address=os.getenv(prefix + 'DEPOSIT_MANAGER_ADDRESS', ''),
    )

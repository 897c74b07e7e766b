"""
Runtime configuration. Every value can be overridden through the environment.
"""
import os

# Solana RPC node
RPC_ENDPOINT = os.environ.get("TXLENS_RPC_ENDPOINT", "https://api.mainnet-beta.solana.com")
COMMITMENT = os.environ.get("TXLENS_COMMITMENT", "confirmed")

# Jupiter price API
PRICE_API_URL = os.environ.get("TXLENS_PRICE_API_URL", "https://api.jup.ag/price/v2")

# Timeout (seconds) for every outbound HTTP request
HTTP_TIMEOUT = float(os.environ.get("TXLENS_HTTP_TIMEOUT", "10"))

# Logging
LOG_LEVEL = os.environ.get("TXLENS_LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Fee formatting
LAMPORTS_PER_SOL = 1_000_000_000
FEE_PRECISION = 9

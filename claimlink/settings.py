import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "escrow")
    REDIS_SOCKET_TIMEOUT_SEC: float = float(os.getenv("REDIS_SOCKET_TIMEOUT_SEC", "5"))
    JOB_TIMEOUT_SEC: int = int(os.getenv("JOB_TIMEOUT_SEC", "600"))

    # Chain client (EVM JSON-RPC)
    CHAIN_RPC_URL: str = os.getenv("CHAIN_RPC_URL", "https://api.avax-test.network/ext/bc/C/rpc")
    CHAIN_ID: int = int(os.getenv("CHAIN_ID", "43113"))
    CHAIN_RPC_TIMEOUT_SEC: int = int(os.getenv("CHAIN_RPC_TIMEOUT_SEC", "10"))
    NATIVE_SYMBOL: str = os.getenv("NATIVE_SYMBOL", "AVAX")
    EXPLORER_TX_URL: str = os.getenv("EXPLORER_TX_URL", "https://testnet.snowtrace.io/tx/")
    # Used to price a hold transfer before the custody wallet exists
    FEE_PROBE_ADDRESS: str = os.getenv("FEE_PROBE_ADDRESS", "0x0000000000000000000000000000000000000001")

    # Wallet custody service
    CUSTODY_BASE_URL: str = os.getenv("CUSTODY_BASE_URL", "https://api.privy.io")
    CUSTODY_APP_ID: str = os.getenv("CUSTODY_APP_ID", "")
    CUSTODY_APP_SECRET: str = os.getenv("CUSTODY_APP_SECRET", "")
    CUSTODY_CAIP2: str = os.getenv("CUSTODY_CAIP2", "eip155:43113")
    CUSTODY_TIMEOUT_SEC: float = float(os.getenv("CUSTODY_TIMEOUT_SEC", "15"))

    # Messaging gateway (outbound)
    MESSAGING_GATEWAY_URL: str = os.getenv("MESSAGING_GATEWAY_URL", "")
    MESSAGING_TIMEOUT_SEC: float = float(os.getenv("MESSAGING_TIMEOUT_SEC", "5"))
    NOTIFY_MAX_RETRIES: int = int(os.getenv("NOTIFY_MAX_RETRIES", "3"))
    BOT_NUMBER: str = os.getenv("BOT_NUMBER", "919489042245")
    CLAIM_LINK_BASE: str = os.getenv("CLAIM_LINK_BASE", "https://wa.me")

    # Escrow policy
    ESCROW_EXPIRY_DAYS: int = int(os.getenv("ESCROW_EXPIRY_DAYS", "3"))
    CLAIM_MIN_GAS_BUFFER: str = os.getenv("CLAIM_MIN_GAS_BUFFER", "0.0005")
    CLAIM_GAS_BUFFER_FRACTION: str = os.getenv("CLAIM_GAS_BUFFER_FRACTION", "0.01")
    CLAIM_MAX_GAS_BUFFER: str = os.getenv("CLAIM_MAX_GAS_BUFFER", "0.005")
    CLAIM_MIN_SETTLEABLE: str = os.getenv("CLAIM_MIN_SETTLEABLE", "0.0001")
    CLAIM_MAX_GAS_FRACTION: str = os.getenv("CLAIM_MAX_GAS_FRACTION", "0.9")
    # Sender-side refund policy; falls back to the claim policy
    REFUND_MIN_GAS_BUFFER: str = os.getenv("REFUND_MIN_GAS_BUFFER", CLAIM_MIN_GAS_BUFFER)
    REFUND_GAS_BUFFER_FRACTION: str = os.getenv("REFUND_GAS_BUFFER_FRACTION", CLAIM_GAS_BUFFER_FRACTION)
    REFUND_MAX_GAS_BUFFER: str = os.getenv("REFUND_MAX_GAS_BUFFER", CLAIM_MAX_GAS_BUFFER)
    SMALL_CLAIM_WARNING_FLOOR: str = os.getenv("SMALL_CLAIM_WARNING_FLOOR", "0.005")

    # Confirmation machine
    PENDING_OP_TTL_SEC: int = int(os.getenv("PENDING_OP_TTL_SEC", "300"))

    # Periodic jobs
    SWEEP_INTERVAL_SEC: int = int(os.getenv("SWEEP_INTERVAL_SEC", "60"))
    SWEEP_BATCH_SIZE: int = int(os.getenv("SWEEP_BATCH_SIZE", "100"))
    RECONCILE_INTERVAL_SEC: int = int(os.getenv("RECONCILE_INTERVAL_SEC", "30"))
    RECONCILE_BATCH_SIZE: int = int(os.getenv("RECONCILE_BATCH_SIZE", "50"))
    JOB_LOCK_TTL_MS: int = int(os.getenv("JOB_LOCK_TTL_MS", "120000"))

    # Transient RPC retry (estimation / balance / receipt only)
    RPC_MAX_ATTEMPTS: int = int(os.getenv("RPC_MAX_ATTEMPTS", "3"))
    RPC_BASE_DELAY_MS: int = int(os.getenv("RPC_BASE_DELAY_MS", "500"))
    RPC_MAX_DELAY_MS: int = int(os.getenv("RPC_MAX_DELAY_MS", "4000"))

    # Security & Privacy
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()

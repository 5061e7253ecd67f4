ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Native base currency uses the zero address, matching Uniswap v4 currency ids.
NATIVE_CURRENCY = ZERO_ADDRESS
WRAPPED_NATIVE = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"

ONE_ETHER = 10**18
ONE_GWEI = 1_000_000_000
WAD = 10**18

# Share issuance precision.
SHARE_SCALE = 10**18

DEFAULT_TOKEN_DECIMALS = 18
BPS_DENOMINATOR = 10_000
FEE_PIPS_DENOMINATOR = 1_000_000

# Constant-product (v2-style) fee: 0.3%
CONSTANT_PRODUCT_FEE_NUMERATOR = 997
CONSTANT_PRODUCT_FEE_DENOMINATOR = 1000

# Conversion reward: gas units are multiplied by the current gas price.
DEFAULT_BASE_CONVERSION_GAS = 100_000
DEFAULT_GAS_PER_CONTRIBUTOR = 15_000
DEFAULT_CONVERSION_REWARD = 12 * 10**14  # 0.0012 ether
MAX_CONVERSION_REWARD = 10**17  # 0.1 ether

DEFAULT_MAX_PRICE_DEVIATION_BPS = 500
MAX_PRICE_DEVIATION_BPS = 2_000

SECONDS_PER_HOUR = 60 * 60
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR
DEFAULT_HARVEST_INTERVAL = SECONDS_PER_DAY
MIN_HARVEST_INTERVAL = SECONDS_PER_HOUR
MAX_HARVEST_INTERVAL = 30 * SECONDS_PER_DAY

DEFAULT_DUST_THRESHOLD = 10**6

# Sanity checks applied when the constant-product venue is the only price source.
DEFAULT_MIN_CONSTANT_PRODUCT_DEPTH = ONE_ETHER
DEFAULT_MAX_CONSTANT_PRODUCT_SWAP_BPS = 1_000

# Fee tier (pips) -> tick spacing for static-fee pools.
TICK_SPACING: dict[int, int] = {100: 1, 500: 10, 3000: 60, 10000: 200}
DYNAMIC_FEE_FLAG = 0x800000
MAX_TICK_SPACING = 32_767
DEFAULT_HTTP_TIMEOUT = 30.0  # HTTP client timeout

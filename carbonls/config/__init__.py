from .carbonls_config import CarbonLsConfig, UnsupportedPlatformError

from .channel_service import ChannelService, ServiceConfigurationError

__all__ = ["ChannelService", "ServiceConfigurationError"]

"""
Device module - Renderer discovery and per-renderer sessions
"""
from .renderer_session import RendererSession
from .device_manager import DeviceManager
from .renderer_scanner import RendererScanner

__all__ = ["RendererSession", "DeviceManager", "RendererScanner"]

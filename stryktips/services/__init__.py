"""Engines that build and evaluate systems on top of ``stryktips.core``."""

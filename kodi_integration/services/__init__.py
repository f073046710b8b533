"""
Services package for the Kodi integration

This package contains the session components: transport, connection lifecycle,
player poller, channel reconciler, EPG aggregator and command dispatcher.
Modules are imported directly; `integration_service.KodiIntegration` wires them.
"""

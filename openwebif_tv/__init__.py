"""
OpenWebIf TV - Enigma2 receiver bridge package

Keeps a local mirror of an OpenWebIf set-top box (power, channel, volume,
mute and the channel list) in sync with the device and sends remote-control
commands back to it.

Core modules:
- reachability: TCP pre-check that keeps HTTP calls from hanging on a dead box
- api: OpenWebIf HTTP client
- scheduler: Named periodic tasks with per-task re-entrancy guard
- poller: Status polling and change detection
- inputs: Channel list reconciliation, overlays and display order
- commands: Power/channel/volume/mute/remote-key dispatch
- device: Synchronization core wiring everything for one receiver
"""

__version__ = "1.4.0"

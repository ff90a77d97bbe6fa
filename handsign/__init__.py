"""
Hand-Sign Recognition Engine
============================

Real-time sign recognition for the video-meeting client: hand landmarks
in, label/confidence events and training-state updates out.

Modules:
    - core: shared types, errors, event bus and the per-frame engine
    - models: landmark feature extraction and the nearest-neighbour classifier
    - modules.training: countdown -> capture training sessions
    - modules.persistence: model blob codec, local store, export/import
    - modules.utils: configuration, logging, performance monitoring
"""

__version__ = "1.0.0"

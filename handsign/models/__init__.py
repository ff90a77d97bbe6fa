"""
Recognition models.

Provides:
    - LandmarkFeatureExtractor: hand observations → 126-float feature vector
    - KNNSignClassifier: online nearest-neighbour classifier with confidence gate
"""
from .feature_extractor import LandmarkFeatureExtractor
from .knn_classifier import KNNClassifierConfig, KNNSignClassifier

__all__ = [
    "LandmarkFeatureExtractor",
    "KNNClassifierConfig",
    "KNNSignClassifier",
]

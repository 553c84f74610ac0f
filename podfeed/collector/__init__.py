"""Collector package for podfeed.

Turns the cluster-wide pod watch stream into classified IP changes.

Submodules
----------
pod_watcher -- PodWatcher: list+watch with local store, relist diffing, back-off.
classifier  -- ChangeClassifier: material IP change detection and topic derivation.
"""

from podfeed.collector.classifier import ChangeClassifier
from podfeed.collector.pod_watcher import PodWatcher

__all__ = ["ChangeClassifier", "PodWatcher"]

"""
GazeHeat - webcam gaze and mouse heatmaps for web pages.

Records where a visitor looks and points while a page is open, and turns
the samples into density heatmaps and an element attention report.

Privacy First:
- Frames are processed in memory and never stored
- Sessions are written only to the local output directory
- Remote face analysis is opt-in and needs an explicitly configured endpoint

Architecture:
- vision: frame sampling, landmark extraction, pupil location, gaze estimation
- recording: sample recorder, page layout hit-testing, mouse input
- analytics: density grid, heatmap rendering, attention analysis
- analysis / remote: offline video analysis, local and remote
- storage: session schema and exports
"""

__version__ = "0.1.0"
__author__ = "GazeHeat Team"
__license__ = "MIT"

"""
Scan Control Package.

Protocol compiler for a galvanometer scan-control DSP used for targeted
photostimulation.  Turns stimulation patterns defined in camera pixel
coordinates into time-ordered, loop-structured command text that the DSP
executes in 10 us cycles.

Subpackages:
    geometry: Pixel to device coordinate transforms, rotation, centroids
    calibration: Scale-factor estimation from calibration points
    protocol: Scan command records, command list and wire serializer
    patterns: Timing coercion, episode scheduler and the six compilers
    sources: Calibration, target and pattern file readers
    configs: DSP configuration loading and validation
"""

__version__ = "1.0.0"

__all__ = ["geometry", "calibration", "protocol", "patterns", "sources", "configs"]

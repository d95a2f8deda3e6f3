DEBUG_MODE              = False             # debug logging in scripts

# ==============================================================================
# DEPTH SAMPLING
# ==============================================================================
#
# The environment depth sensor delivers one depth grid per tick. Samples are
# taken on a regular lattice: with a stride of 4 only every 4th pixel in each
# axis is reprojected. Raise the stride if a pass gets too slow for the
# capture cadence.
#
# Depth values outside [MIN_DEPTH, MAX_DEPTH] are dropped. MIN_DEPTH must stay
# above zero so the headset's own geometry (self-occlusion) never shows up.
#
# ==============================================================================

DEPTH_SUBSAMPLE_STRIDE  = 4                 # sample every Nth pixel per axis
MIN_DEPTH               = 0.1               # meters
MAX_DEPTH               = 5.0               # meters

# ==============================================================================
# CAPTURE CADENCE
# ==============================================================================

CAPTURE_INTERVAL_SECS   = 1.0               # seconds between periodic captures
DISTANCE_CUTOFF         = 4.0               # meters from the camera, 0 = disabled

# ==============================================================================
# EXECUTION PATH
# ==============================================================================
#
# True:  reproject pixel bands on a thread pool (models a GPU compute dispatch)
# False: reproject the whole grid in one serial pass
#
# Both paths produce identical output. If the parallel path fails the
# orchestrator logs it and falls back to serial for that pass.
#
# ==============================================================================

USE_PARALLEL_DISPATCH   = True
DISPATCH_WORKERS        = 4                 # worker threads for the parallel path

# ==============================================================================
# POINT CLOUD PROCESSING
# ==============================================================================

ENABLE_PROCESSING       = True              # outlier removal + normal estimation
DOWNSAMPLE_STRIDE       = 1                 # keep every Nth point, 1 = keep all
OUTLIER_NB_NEIGHBORS    = 16                # K for statistical outlier removal
OUTLIER_STD_RATIO       = 2.0               # sigma multiplier
NORMAL_SEARCH_RADIUS    = 0.05              # meters
NORMAL_FALLBACK_NEIGHBORS = 8               # K used when the radius finds nothing

# ==============================================================================
# SURFACE RECONSTRUCTION
# ==============================================================================

ENABLE_RECONSTRUCTION   = False             # emit a splat mesh with every publish
SPLAT_SIZE              = 0.01              # half-width of each splat quad (meters)

# ==============================================================================
# DEPTH COLOR GRADIENT (RGBA, 0-1)
# ==============================================================================

NEAR_COLOR              = (1.0, 0.0, 0.0, 1.0)  # red at MIN_DEPTH
FAR_COLOR               = (0.0, 0.0, 1.0, 1.0)  # blue at MAX_DEPTH

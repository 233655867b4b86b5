"""
SLZD: safe landing zone detection from LiDAR point clouds.
"""

from .errors import LoadError, InvalidParameter, EmptyInputWarning
from .logging_config import setup_logging
from .models import PointCloud, PlaneModel, CloudSegmentation, Open3DSegmentation, check_partition
from .data_loader import CloudPath, CloudHandle, load_cloud
from .preprocessing import voxel_downsample, voxel_downsample_open3d
from .ransac import segment_plane, segment_plane_open3d
from .bridge import to_open3d, to_cloud, transform_plane_model
from .zones import SLZDCandidate, WeightedScorePolicy, grow_patch, score_candidate
from .pipeline import PipelineParams, SLZDResult, run_pipeline
from .config import load_params, params_from_dict
from .visualizations import candidates_figure, segmentation_figure

__version__ = "0.1.0"

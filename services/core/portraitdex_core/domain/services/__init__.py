"""Domain services for Portraitdex."""

from portraitdex_core.domain.services.job_status import Checkpoint, JobStatusStore
from portraitdex_core.domain.services.portrait_store import PortraitStore, UnpublishPolicy

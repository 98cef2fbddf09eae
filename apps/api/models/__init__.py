"""Models package."""

from .user import User
from .bono import Bono
from .intervention import Intervention
from .punctual_intervention import PunctualIntervention
from .password_reset_token import PasswordResetToken
from .blob_object import BlobObject

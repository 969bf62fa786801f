"""
Data contribution client.

Reproduces the contributor UI's flow against the same services: Google
Drive storage, the Vana data registry and TEE pool, the refinement service
and the DataDAO's reward contract.
"""

from .crypto import SIGN_MESSAGE, decrypt_with_private_key, encrypt_with_public_key, format_vana_file_id
from .flow import ContributionConfig, ContributionFlow
from .google_drive import GoogleDriveClient
from .models import ContributionState, DriveInfo, FlowStep, UploadResult, UserInfo
from .services import RefinementClient, TeeClient

__all__ = [
    'SIGN_MESSAGE',
    'ContributionConfig',
    'ContributionFlow',
    'ContributionState',
    'DriveInfo',
    'FlowStep',
    'GoogleDriveClient',
    'RefinementClient',
    'TeeClient',
    'UploadResult',
    'UserInfo',
    'decrypt_with_private_key',
    'encrypt_with_public_key',
    'format_vana_file_id',
]

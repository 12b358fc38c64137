"""
Firebase Admin application bootstrap.

One firebase_admin App is shared by the realtime location store, FCM
push sender and ID token verifier.

SECURITY: The service account file grants full project access.
Its path may be logged, its contents never.
"""

import firebase_admin
from firebase_admin import credentials

from safecampus.config.logging_config import get_logger
from safecampus.config.settings import FirebaseSettings

logger = get_logger(__name__)


def get_firebase_app(settings: FirebaseSettings) -> firebase_admin.App:
    """
    Return the default Firebase app, initialising it on first use.

    Args:
        settings: Firebase configuration

    Returns:
        Initialised firebase_admin.App
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if settings.credentials_file:
        cred = credentials.Certificate(settings.credentials_file)
    else:
        cred = credentials.ApplicationDefault()

    options: dict = {}
    if settings.database_url:
        options["databaseURL"] = settings.database_url.rstrip("/")
    if settings.project_id:
        options["projectId"] = settings.project_id

    app = firebase_admin.initialize_app(cred, options)
    logger.info(
        "Firebase app initialized",
        project_id=settings.project_id,
        realtime_db=bool(settings.database_url),
    )
    return app

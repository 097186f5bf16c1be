"""Engine configuration read from environment variables."""

import os


class EngineConfig:
    """Collaboration engine settings."""

    REPOSITORY_BACKEND = os.environ.get("COLLAB_REPOSITORY_BACKEND", "memory").lower()
    TABLE = os.environ.get("COLLAB_TABLE", "collaborations")
    # Perform accepted -> active in the same write as the second signature
    AUTO_ACTIVATE_ON_SIGNATURE = os.environ.get("COLLAB_AUTO_ACTIVATE_ON_SIGNATURE", "true").lower() == "true"
    MESSAGE_MAX_LENGTH = int(os.environ.get("COLLAB_MESSAGE_MAX_LENGTH", "500"))
    APPORTEUR_MAX_PERCENTAGE = float(os.environ.get("COLLAB_APPORTEUR_MAX_PERCENTAGE", "50"))
    # Listing store read by the post-owner lookup
    PROPERTY_TABLE = os.environ.get("COLLAB_PROPERTY_TABLE", "properties")
    SEARCH_AD_TABLE = os.environ.get("COLLAB_SEARCH_AD_TABLE", "search_ads")
    USER_TABLE = os.environ.get("COLLAB_USER_TABLE", "users")

# anon_tracker/services/firebase.py

import logging
import os

import firebase_admin
from firebase_admin import credentials, firestore
from google.auth.credentials import AnonymousCredentials
from google.cloud import firestore as gcloud_firestore

logger = logging.getLogger(__name__)

_firestore = None


def init_firebase():
    """
    Initialize Firebase Admin SDK
    Uses environment variables (Render safe).
    When FIRESTORE_EMULATOR_HOST is set, connects to the emulator without credentials.
    """
    global _firestore

    if _firestore is not None:
        return _firestore

    if os.getenv("FIRESTORE_EMULATOR_HOST"):
        _firestore = gcloud_firestore.Client(
            project=os.getenv("FIREBASE_PROJECT_ID", "anon-tracker-dev"),
            credentials=AnonymousCredentials(),
        )
        logger.info("Firestore initialized against emulator at %s", os.environ["FIRESTORE_EMULATOR_HOST"])
        return _firestore

    if not firebase_admin._apps:
        firebase_config = {
            "type": "service_account",
            "project_id": os.getenv("FIREBASE_PROJECT_ID"),
            "private_key_id": os.getenv("FIREBASE_PRIVATE_KEY_ID"),
            "private_key": os.getenv("FIREBASE_PRIVATE_KEY", "").replace("\\n", "\n"),
            "client_email": os.getenv("FIREBASE_CLIENT_EMAIL"),
            "client_id": os.getenv("FIREBASE_CLIENT_ID"),
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
            "client_x509_cert_url": os.getenv("FIREBASE_CLIENT_CERT_URL"),
        }

        cred = credentials.Certificate(firebase_config)
        firebase_admin.initialize_app(cred)

    _firestore = firestore.client()
    logger.info("Firebase initialized (Firestore)")
    return _firestore


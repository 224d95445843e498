from threading import Lock
from typing import Optional, Dict, Any


class InMemoryTokenStore:
    def __init__(self):
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._lock = Lock()

    def save_tokens(self, provider: str, user_id: str, token_data: Dict[str, Any]) -> None:
        with self._lock:
            self._docs[f"{provider}_{user_id}"] = dict(token_data)

    def get_tokens(self, provider: str, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._docs.get(f"{provider}_{user_id}")
            return dict(doc) if doc is not None else None


class FirestoreTokenStore:
    def __init__(self, cred_path: str):
        import firebase_admin
        from firebase_admin import credentials, firestore

        cred = credentials.Certificate(cred_path)
        try:
            app = firebase_admin.get_app()
        except ValueError:
            app = firebase_admin.initialize_app(cred)
        self._db = firestore.client(app)

    def save_tokens(self, provider: str, user_id: str, token_data: Dict[str, Any]) -> None:
        doc_id = f"{provider}_{user_id}"
        self._db.collection("oauth_tokens").document(doc_id).set(token_data)

    def get_tokens(self, provider: str, user_id: str) -> Optional[Dict[str, Any]]:
        doc_id = f"{provider}_{user_id}"
        doc = self._db.collection("oauth_tokens").document(doc_id).get()
        if not doc.exists:
            return None
        return doc.to_dict()


def create_token_store_from_env(settings, logger=None):
    backend = settings.token_store_backend

    try:
        if backend == "memory":
            return InMemoryTokenStore()

        if backend == "firestore":
            if not settings.firebase_credentials:
                raise RuntimeError("FIREBASE_CREDENTIALS environment variable not set")
            return FirestoreTokenStore(settings.firebase_credentials)

        raise RuntimeError(f"Unsupported TOKEN_STORE_BACKEND '{backend}'")
    except Exception as exc:
        if logger:
            logger.warning(f"Token store init failed ({backend}): {exc}")
        if settings.token_store_fallback_to_memory:
            if logger:
                logger.warning("Falling back to in-memory token store")
            return InMemoryTokenStore()
        raise

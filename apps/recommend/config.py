# apps/recommend/config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _parse_languages(raw: str) -> dict:
    out = {}
    for pair in raw.split(","):
        if ":" not in pair:
            continue
        code, algorithm = pair.split(":", 1)
        if code.strip() and algorithm.strip():
            out[code.strip().lower()] = algorithm.strip().lower()
    return out


class Settings:
    def __init__(self):
        self.env = os.getenv("ENV", "development")
        cors = os.getenv("CORS_ORIGINS", "")
        self.cors_origins = [o.strip() for o in cors.split(",") if o.strip()]

        # Neo4j (graph)
        self.neo4j_uri = os.getenv("NEO4J_URI", "bolt://localhost:7687")
        self.neo4j_username = os.getenv("NEO4J_USERNAME", "neo4j")
        self.neo4j_password = os.getenv("NEO4J_PASSWORD", "neo4j")
        self.neo4j_database = os.getenv("NEO4J_DATABASE", "neo4j")

        # Tokenizer
        self.stemmer_languages = _parse_languages(
            os.getenv("STEMMER_LANGUAGES", "en:english,fr:french")
        )
        self.stemmer_default = os.getenv("STEMMER_DEFAULT", "english")

        # Similarity batch job
        self.similarity_floor = float(os.getenv("SIMILARITY_FLOOR", "0.0"))
        self.similarity_workers = int(os.getenv("SIMILARITY_WORKERS", "4"))
        self.edge_batch_size = int(os.getenv("EDGE_BATCH_SIZE", "500"))
        self.edge_write_concurrency = int(os.getenv("EDGE_WRITE_CONCURRENCY", "4"))
        backoff_csv = os.getenv("EDGE_WRITE_BACKOFF_SECONDS", "1,2,5")
        self.edge_write_backoff_seconds = [float(x.strip()) for x in backoff_csv.split(",") if x.strip()]

        # Recommendations
        self.recommend_default_limit = int(os.getenv("RECOMMEND_DEFAULT_LIMIT", "10"))
        self.recommend_max_limit = int(os.getenv("RECOMMEND_MAX_LIMIT", "100"))
        self.recommend_concurrency = int(os.getenv("RECOMMEND_CONCURRENCY", "16"))
        self.recommend_timeout_seconds = float(os.getenv("RECOMMEND_TIMEOUT_SECONDS", "5.0"))

        # Dump loading
        self.dump_dir = os.getenv("DUMP_DIR", "..")
        self.watched_percent_th = float(os.getenv("WATCHED_PERCENT_TH", "0.7"))


settings = Settings()

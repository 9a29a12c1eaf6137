from __future__ import annotations

import json

from pydantic_settings import BaseSettings

DEFAULT_TOPIC_DOMAINS: dict[str, list[str]] = {
    "finance": ["reuters.com", "bloomberg.com", "wsj.com", "ft.com", "sec.gov"],
    "technology": ["techcrunch.com", "arstechnica.com", "theverge.com", "wired.com"],
    "health": ["nih.gov", "who.int", "mayoclinic.org", "webmd.com", "healthline.com"],
    "science": ["nature.com", "science.org", "sciencedaily.com", "phys.org", "arxiv.org"],
    "news": ["reuters.com", "ap.org", "bbc.com", "npr.org", "cnn.com"],
}


class Settings(BaseSettings):
    # Search providers
    search_providers: str = "tavily,exa"  # priority order, comma-separated
    tavily_api_key: str = ""
    tavily_requests_per_second: float = 10.0
    tavily_burst_size: float | None = None
    exa_api_key: str = ""
    exa_base_url: str = "https://api.exa.ai"
    exa_requests_per_second: float = 5.0
    exa_burst_size: float | None = None
    search_timeout_seconds: float = 30.0
    search_default_max_results: int = 10
    search_excerpt_length: int = 500
    topic_domains_json: str = ""  # {"topic": ["host", ...]} merged over the defaults

    # Harvester
    harvest_timeout_seconds: float = 10.0
    robots_txt_timeout_seconds: float = 5.0
    respect_robots_txt: bool = True
    harvest_user_agent: str = "ResearchAssistant/1.0 (Educational)"
    harvest_requests_per_second: float = 10.0
    harvest_burst_size: float | None = None
    harvest_max_redirects: int = 5
    extract_in_thread: bool = True  # clean and chunk pages off the event loop
    min_content_length: int = 100
    max_chunk_size: int = 1000
    chunk_overlap: int = 100

    # Dedup / rerank
    authoritative_domains: str = (
        "wikipedia.org,github.com,arxiv.org,scholar.google.com,.edu,.gov"
    )
    authority_boost: float = 0.3
    recency_boost: float = 0.2
    recency_window_days: int = 1095
    max_evidence: int = 50

    # Logging
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = ""  # empty -> console only

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def search_provider_list(self) -> list[str]:
        return [p.strip().lower() for p in self.search_providers.split(",") if p.strip()]

    @property
    def authoritative_domain_list(self) -> list[str]:
        return [d.strip().lower() for d in self.authoritative_domains.split(",") if d.strip()]

    @property
    def topic_domain_map(self) -> dict[str, list[str]]:
        merged = {topic: list(domains) for topic, domains in DEFAULT_TOPIC_DOMAINS.items()}
        if not self.topic_domains_json.strip():
            return merged
        extra = json.loads(self.topic_domains_json)
        if not isinstance(extra, dict):
            raise ValueError("TOPIC_DOMAINS_JSON must be a JSON object")
        for topic, domains in extra.items():
            if not isinstance(domains, list):
                raise ValueError(f"TOPIC_DOMAINS_JSON entry {topic!r} must be a list")
            merged[str(topic).lower()] = [str(d) for d in domains]
        return merged


settings = Settings()

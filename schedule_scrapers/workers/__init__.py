from schedule_scrapers.workers.media_urls import is_direct_content_url, large_scale_url
from schedule_scrapers.workers.photo_worker import PhotoWorker
from schedule_scrapers.workers.pool import WorkerPool, partition

__all__ = ["PhotoWorker", "WorkerPool", "is_direct_content_url", "large_scale_url", "partition"]

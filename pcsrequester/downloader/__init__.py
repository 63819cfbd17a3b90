"""Multi-connection range downloader with resumable state."""
"""Single-request and block-based parallel uploaders."""
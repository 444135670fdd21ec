"""ANT wire formats: message ids, trailers and page layouts."""

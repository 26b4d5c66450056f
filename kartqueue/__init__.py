"""Case reservation queues and nearest-kart dispatch."""

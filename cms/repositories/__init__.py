# Repositories package.
#
#   content_repository - ContentRepository: live-row reads, paginated
#                        filtering and association sync for Content
#
# Repositories only flush; committing is the caller's job.

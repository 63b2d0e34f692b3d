# Services package.
#
#   content_service  - ContentService: lifecycle, slugs, cache-aside reads
#                      and event dispatch for Content
#   media_service    - MediaService: Media rows backed by the file storage
#   user_service     - plain async functions for User
#
# ContentService owns its transaction: every mutation commits (or rolls
# back and removes freshly stored files) before caches are evicted and
# events dispatched.  user_service leaves the boundary to ``get_db``.

MESSAGE_ID_COUNTER_KEY = "message_id" # INCR counter, last issued message id
MESSAGE_KEY = "message:{message_id}" # message id - hash with the message fields
MESSAGE_KEY_PATTERN = "message:*" # SCAN pattern for every message hash

# **`message:{id}` hash fields**
# - `id` = integer, issued by INCR on `message_id`
# - `sender_id` = string
# - `receiver_id` = string
# - `content` = string
# - `created_at` = ISO timestamp (UTC, millisecond precision, trailing Z)
# - `updated_at` = ISO timestamp, only present once the message was edited

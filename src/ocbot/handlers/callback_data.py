"""Callback data constants for Telegram inline keyboards.

Defines all CB_* prefixes used for routing callback queries in the bot.
Each prefix identifies a specific action or navigation target.

Constants:
  - CB_MODEL_*: Model picker (select by global index, page navigation)
  - CB_NOOP: Inert button (page counter)
"""

# Model picker
CB_MODEL_PICK = "mdl:p:"  # mdl:p:<global index>
CB_MODEL_PAGE = "mdl:pg:"  # mdl:pg:<page>

CB_NOOP = "noop"

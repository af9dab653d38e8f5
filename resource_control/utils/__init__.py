from .helpers import (collect_path, deep_merge, get_path, has_path, is_number, map_path, normalize_doc,
                      set_path, to_object_id, unset_path)

from devui.main import main

raise SystemExit(main())

from user_email_verification.cli import main

raise SystemExit(main())
